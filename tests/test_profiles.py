"""Tests for profile loading, guest overlay and derived energy fields."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.schemas_conversation import UserProfile
from app.db.profiles import get_user_profile, load_profile, merge_guest_profile


class TestMergeGuestProfile:
    def test_guest_fills_missing_fields_only(self):
        stored = UserProfile(id="user-1", age=30, gender="male", height=175, weight=None)
        guest = UserProfile(age=45, weight=70, activity_level="very_active")

        merged = merge_guest_profile(stored, guest)

        assert merged.age == 30
        assert merged.weight == 70
        assert merged.activity_level == "very_active"
        assert merged.id == "user-1"

    def test_guest_alone_when_nothing_stored(self):
        guest = UserProfile(age=45)
        assert merge_guest_profile(None, guest) is guest

    def test_no_profiles(self):
        assert merge_guest_profile(None, None) is None


class TestLoadProfile:
    @pytest.mark.asyncio
    @patch("app.db.profiles.get_user_profile", new_callable=AsyncMock)
    async def test_derives_bmr_and_tdee(self, mock_get):
        mock_get.return_value = UserProfile(
            id="user-1", age=30, gender="male", height=175, weight=70, activity_level="moderately_active"
        )

        profile = await load_profile("user-1")

        assert profile.bmr == 1649
        assert profile.tdee == 2556

    @pytest.mark.asyncio
    @patch("app.db.profiles.get_user_profile", new_callable=AsyncMock)
    async def test_incomplete_profile_has_no_tdee(self, mock_get):
        mock_get.return_value = UserProfile(id="user-1", age=30, gender="male")

        profile = await load_profile("user-1")

        assert profile.bmr is None
        assert profile.tdee is None

    @pytest.mark.asyncio
    @patch("app.db.profiles.get_user_profile", new_callable=AsyncMock)
    async def test_missing_profile(self, mock_get):
        mock_get.return_value = None
        assert await load_profile("user-1") is None


@pytest.mark.asyncio
@patch("app.db.profiles.get_supabase")
async def test_get_user_profile_reads_profiles_table(mock_get_supabase):
    mock_sb = MagicMock()
    query = mock_sb.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute.return_value = MagicMock(
        data=[{"id": "user-1", "age": 30, "gender": "female", "created_at": "2025-01-01"}]
    )
    mock_get_supabase.return_value = mock_sb

    profile = await get_user_profile("user-1")

    mock_sb.table.assert_called_with("profiles")
    assert profile.gender == "female"
