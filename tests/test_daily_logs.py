"""Tests for daily log reads and writes with a mocked Supabase client."""

from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from app.core.schemas_conversation import ExerciseLogEntry, FoodLogEntry, LogKind
from app.db.daily_logs import _day_bounds, fetch_daily_context, get_daily_logs, parse_log_rows, save_log


class TestGetDailyLogs:
    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_supabase")
    async def test_food_logs_filtered_by_date(self, mock_get_supabase):
        mock_sb = MagicMock()
        query = mock_sb.table.return_value.select.return_value.eq.return_value.eq.return_value.order.return_value
        query.execute.return_value = MagicMock(
            data=[
                {"id": "f1", "user_id": "user-1", "name": "Apple", "calories": 95, "meal_type": "Snack"},
                {"id": "f2", "user_id": "user-1", "calories": 300},
            ]
        )
        mock_get_supabase.return_value = mock_sb

        logs = await get_daily_logs(LogKind.FOOD, "user-1", "2025-04-13")

        mock_sb.table.assert_called_with("food_logs")
        mock_sb.table.return_value.select.return_value.eq.assert_called_with("user_id", "user-1")
        mock_sb.table.return_value.select.return_value.eq.return_value.eq.assert_called_with(
            "date", "2025-04-13"
        )
        assert len(logs) == 1
        assert isinstance(logs[0], FoodLogEntry)
        assert logs[0].meal_type == "snack"

    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_supabase")
    async def test_interaction_logs_filtered_by_timestamp_range(self, mock_get_supabase):
        mock_sb = MagicMock()
        eq = mock_sb.table.return_value.select.return_value.eq.return_value
        eq.gte.return_value.lt.return_value.order.return_value.execute.return_value = MagicMock(
            data=[{"id": "i1", "timestamp": "2025-04-13T08:00:00+00:00", "query": "hi"}]
        )
        mock_get_supabase.return_value = mock_sb

        logs = await get_daily_logs(LogKind.INTERACTION, "user-1", "2025-04-13")

        eq.gte.assert_called_with("timestamp", "2025-04-13T00:00:00+00:00")
        eq.gte.return_value.lt.assert_called_with("timestamp", "2025-04-14T00:00:00+00:00")
        assert logs[0].query == "hi"

    @pytest.mark.asyncio
    @patch("app.db.daily_logs.user_timezone")
    @patch("app.db.daily_logs.get_supabase")
    async def test_interaction_day_follows_user_timezone(self, mock_get_supabase, mock_zone):
        mock_zone.return_value = ZoneInfo("America/New_York")
        mock_sb = MagicMock()
        eq = mock_sb.table.return_value.select.return_value.eq.return_value
        eq.gte.return_value.lt.return_value.order.return_value.execute.return_value = MagicMock(
            data=[{"id": "i1", "timestamp": "2025-04-14T01:00:00+00:00", "query": "Dinner ideas?"}]
        )
        mock_get_supabase.return_value = mock_sb

        logs = await get_daily_logs(LogKind.INTERACTION, "user-1", "2025-04-13")

        # 21:00 local on the 13th is 01:00 UTC on the 14th and stays in the day
        eq.gte.assert_called_with("timestamp", "2025-04-13T04:00:00+00:00")
        eq.gte.return_value.lt.assert_called_with("timestamp", "2025-04-14T04:00:00+00:00")
        assert logs[0].query == "Dinner ideas?"

    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_supabase")
    async def test_query_failure_raises(self, mock_get_supabase):
        mock_sb = MagicMock()
        mock_sb.table.side_effect = Exception("connection refused")
        mock_get_supabase.return_value = mock_sb

        with pytest.raises(Exception, match="connection refused"):
            await get_daily_logs(LogKind.EXERCISE, "user-1", "2025-04-13")


class TestSaveLog:
    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_supabase")
    async def test_returns_inserted_row(self, mock_get_supabase):
        mock_sb = MagicMock()
        mock_sb.table.return_value.insert.return_value.execute.return_value = MagicMock(
            data=[{"id": "row-1", "name": "Apple"}]
        )
        mock_get_supabase.return_value = mock_sb

        saved = await save_log(LogKind.FOOD, {"name": "Apple", "user_id": "user-1"})

        assert saved["id"] == "row-1"
        mock_sb.table.assert_called_with("food_logs")

    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_supabase")
    async def test_empty_insert_raises(self, mock_get_supabase):
        mock_sb = MagicMock()
        mock_sb.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
        mock_get_supabase.return_value = mock_sb

        with pytest.raises(ValueError):
            await save_log(LogKind.EXERCISE, {"name": "Run"})


class TestFetchDailyContext:
    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_daily_logs", new_callable=AsyncMock)
    async def test_missing_user_short_circuits(self, mock_get):
        assert await fetch_daily_context(None, "2025-04-13") == ([], [], [])
        mock_get.assert_not_called()

    @pytest.mark.asyncio
    @patch("app.db.daily_logs.get_daily_logs", new_callable=AsyncMock)
    async def test_failed_read_empties_only_its_category(self, mock_get):
        food = [FoodLogEntry(name="Apple", calories=95)]
        exercise = [ExerciseLogEntry(name="Run", type="cardio", calories_burned=300)]

        async def _fake(kind, user_id, target_date):
            if kind == LogKind.INTERACTION:
                raise RuntimeError("timeout")
            return food if kind == LogKind.FOOD else exercise

        mock_get.side_effect = _fake

        result = await fetch_daily_context("user-1", "2025-04-13")

        assert result == (food, exercise, [])


def test_parse_log_rows_handles_none():
    assert parse_log_rows(LogKind.FOOD, None) == []


@patch("app.db.daily_logs.user_timezone")
def test_day_bounds_across_dst_change(mock_zone):
    mock_zone.return_value = ZoneInfo("America/New_York")

    assert _day_bounds("2025-03-09") == ("2025-03-09T05:00:00+00:00", "2025-03-10T04:00:00+00:00")
