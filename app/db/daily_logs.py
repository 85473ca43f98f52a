"""Daily food, exercise and interaction log operations."""

import asyncio
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from app.core.logging import get_logger
from app.core.personalization import user_timezone
from app.core.schemas_conversation import (
    ExerciseLogEntry,
    FoodLogEntry,
    InteractionLogEntry,
    LogKind,
)
from app.db.supabase_client import execute_async, get_supabase

logger = get_logger(__name__)

LOG_TABLES: dict[LogKind, str] = {
    LogKind.FOOD: "food_logs",
    LogKind.EXERCISE: "exercise_logs",
    LogKind.INTERACTION: "interaction_logs",
}

LOG_MODELS: dict[LogKind, type[BaseModel]] = {
    LogKind.FOOD: FoodLogEntry,
    LogKind.EXERCISE: ExerciseLogEntry,
    LogKind.INTERACTION: InteractionLogEntry,
}


def parse_log_rows(kind: LogKind, rows: list[dict[str, Any]] | None) -> list[Any]:
    """
    Validate raw Supabase rows into log models, skipping rows that don't fit.

    Args:
        kind: Log category the rows belong to
        rows: Raw row dicts (may be None)

    Returns:
        List of FoodLogEntry / ExerciseLogEntry / InteractionLogEntry
    """
    model = LOG_MODELS[kind]
    entries = []
    for row in rows or []:
        try:
            entries.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {kind.value} row {row.get('id')}: {e}")
    return entries


def _day_bounds(target_date: str) -> tuple[str, str]:
    """UTC ISO bounds [start, end) of a YYYY-MM-DD date in the user's timezone."""
    day = date.fromisoformat(target_date)
    zone = user_timezone()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc).isoformat(), end.astimezone(timezone.utc).isoformat()


async def get_daily_logs(kind: LogKind, user_id: str, target_date: str) -> list[Any]:
    """
    Get one user's records of a category for a single date.

    Food and exercise rows are matched on their ``date`` column; interaction
    rows on their ``timestamp`` falling inside that day. Results are ordered
    oldest first.

    Args:
        kind: Log category
        user_id: User id
        target_date: Date as YYYY-MM-DD

    Returns:
        List of validated log entries

    Raises:
        Exception: If the query fails
    """
    supabase = get_supabase()
    table = LOG_TABLES[kind]

    try:
        query = supabase.table(table).select("*").eq("user_id", user_id)
        if kind == LogKind.INTERACTION:
            start, end = _day_bounds(target_date)
            query = query.gte("timestamp", start).lt("timestamp", end).order("timestamp")
        else:
            query = query.eq("date", target_date).order("logged_at")

        response = await execute_async(query)
        entries = parse_log_rows(kind, response.data)

        logger.debug(
            f"Fetched {len(entries)} {table} rows for {target_date}",
            extra={"user_id": user_id},
        )
        return entries

    except Exception as e:
        logger.error(f"Failed to fetch {table} for user {user_id} on {target_date}: {e}")
        raise


async def save_log(kind: LogKind, record: dict[str, Any]) -> dict[str, Any]:
    """
    Insert a single log row.

    Args:
        kind: Log category
        record: Row dict (column names as keys)

    Returns:
        Inserted row

    Raises:
        ValueError: If the insert returned no data
        Exception: If the insert fails
    """
    supabase = get_supabase()
    table = LOG_TABLES[kind]

    try:
        response = await execute_async(supabase.table(table).insert(record))

        if not response.data:
            raise ValueError(f"No data returned from {table} insert")

        saved = response.data[0]
        logger.info(
            f"Saved {table} row {saved.get('id')}",
            extra={"user_id": record.get("user_id")},
        )
        return saved

    except Exception as e:
        logger.error(f"Failed to save {table} row: {e}")
        raise


async def fetch_daily_context(
    user_id: str | None, target_date: str
) -> tuple[list[FoodLogEntry], list[ExerciseLogEntry], list[InteractionLogEntry]]:
    """
    Read a user's food, exercise and interaction logs for one date concurrently.

    A missing user id short-circuits to three empty lists; a failed read
    empties only its own category.

    Returns:
        (food_logs, exercise_logs, interaction_logs)
    """
    if not user_id:
        return [], [], []

    kinds = (LogKind.FOOD, LogKind.EXERCISE, LogKind.INTERACTION)
    results = await asyncio.gather(
        *(get_daily_logs(kind, user_id, target_date) for kind in kinds),
        return_exceptions=True,
    )

    food, exercise, interaction = (
        [] if isinstance(result, BaseException) else result for result in results
    )
    return food, exercise, interaction
