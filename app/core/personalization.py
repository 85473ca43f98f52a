"""Personalization gate and clock helpers for the conversation pipeline."""

import re
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

FIRST_PERSON_TERMS = ("i", "me", "my", "mine", "myself", "i'm", "i've", "i'll", "i'd")

GOAL_TERMS = (
    "goal",
    "diet",
    "plan",
    "target",
    "lose",
    "gain",
    "weight",
    "calories left",
    "remaining",
    "deficit",
    "surplus",
    "maintenance",
    "tdee",
    "bmr",
    "progress",
    "should i",
    "recommend",
    "budget",
)

# Longer alternatives first so "i'm" wins over "i"; lookarounds keep "i" from
# matching inside "it" or "i'm" from matching inside "aim".
_PERSONALIZATION_PATTERN = re.compile(
    r"(?<![\w'])(?:"
    + "|".join(
        re.escape(term).replace(r"\ ", r"\s+")
        for term in sorted(FIRST_PERSON_TERMS + GOAL_TERMS, key=len, reverse=True)
    )
    + r")(?![\w'])",
    re.IGNORECASE,
)

# (start hour inclusive, label), checked in order
TIME_OF_DAY_BANDS = (
    (5, "Morning"),
    (11, "Midday"),
    (14, "Afternoon"),
    (17, "Evening"),
    (21, "Night"),
)


def needs_personalization(query: str | None) -> bool:
    """Whether a query warrants loading the user's profile and energy estimates."""
    if not query:
        return False
    return _PERSONALIZATION_PATTERN.search(query.replace("’", "'")) is not None


def route_after_daily_context(state: Any) -> str:
    """Route to the profile fetch only when the turn is personalized."""
    if getattr(state, "personalize", False):
        return "fetch_profile"
    return "retrieve_history"


def user_timezone() -> ZoneInfo:
    """The configured USER_TIMEZONE, or UTC when the name is unknown."""
    name = get_settings().USER_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def now_in_user_timezone() -> datetime:
    """Current wall-clock time in the configured user timezone."""
    return datetime.now(user_timezone())


def today_in_user_timezone() -> date:
    """Today's date in the configured user timezone."""
    return now_in_user_timezone().date()


def time_of_day_label(moment: datetime | None = None) -> str:
    """Coarse time-of-day label used to tailor suggestions."""
    hour = (moment or now_in_user_timezone()).hour
    label = "Night"
    for start, band in TIME_OF_DAY_BANDS:
        if hour >= start:
            label = band
    return label
