"""Resolve the calendar date a user query refers to."""

import re
from datetime import date

from app.core.config import get_settings
from app.core.llm import complete_json, parse_llm_json_dict
from app.core.logging import get_logger
from app.core.personalization import today_in_user_timezone

logger = get_logger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SYSTEM_PROMPT = """You resolve which calendar date a health-tracking message is about.

Today's date is {today}.

Read the user's message and decide which date the meals, workouts or questions in it refer to.
Resolve relative references ("yesterday", "last Monday", "this morning") against today's date.
If the message does not clearly point at another date, use today's date.

Respond with ONLY a JSON object: {{"date": "YYYY-MM-DD"}}"""


def validate_date_string(value: object) -> str | None:
    """Return ``value`` if it is a real YYYY-MM-DD calendar date, else None."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        return None
    candidate = value.strip()
    try:
        date.fromisoformat(candidate)
    except ValueError:
        return None
    return candidate


async def extract_target_date(
    query: str,
    today: date | None = None,
    user_id: str | None = None,
) -> str:
    """
    Determine the target date of a query.

    Falls back to today on any completion failure or unusable answer.

    Args:
        query: Latest user message
        today: Today's date (defaults to today in the configured timezone)
        user_id: Optional user id for usage logging

    Returns:
        Date string in YYYY-MM-DD format
    """
    settings = get_settings()
    fallback = (today or today_in_user_timezone()).isoformat()

    if not query or not query.strip():
        return fallback

    try:
        raw = await complete_json(
            SYSTEM_PROMPT.format(today=fallback),
            query,
            model=settings.DATE_EXTRACTION_MODEL,
            temperature=settings.DATE_EXTRACTION_TEMPERATURE,
            chain="extract_target_date",
            user_id=user_id,
        )
        parsed = parse_llm_json_dict(raw)
    except Exception as e:
        logger.warning(f"Date extraction failed, using today ({fallback}): {e}")
        return fallback

    resolved = validate_date_string(parsed.get("date"))
    if resolved is None:
        logger.warning(f"Date extraction returned unusable value {parsed.get('date')!r}, using today")
        return fallback

    logger.info(f"Resolved target date {resolved}")
    return resolved
