"""Energy expenditure and daily calorie arithmetic."""

from collections.abc import Iterable

from app.core.logging import get_logger
from app.core.schemas_conversation import CalorieSummary, ExerciseLogEntry, FoodLogEntry, UserProfile

logger = get_logger(__name__)

# Mifflin-St Jeor sex offsets; the fallback averages male (+5) and female (-161)
BMR_OFFSETS = {"male": 5, "female": -161}
BMR_AVERAGED_OFFSET = -78

ACTIVITY_MULTIPLIERS = {
    "sedentary": 1.2,
    "lightly_active": 1.375,
    "moderately_active": 1.55,
    "very_active": 1.725,
    "extra_active": 1.9,
}
DEFAULT_ACTIVITY_MULTIPLIER = 1.2


def calculate_bmr(profile: UserProfile) -> int | None:
    """
    Basal metabolic rate via the Mifflin-St Jeor equation.

    Height is in cm, weight in kg, age in years.

    Returns:
        Rounded BMR in kcal/day, or None if age, gender, height or weight is missing
    """
    if not (profile.age and profile.gender and profile.height and profile.weight):
        return None

    offset = BMR_OFFSETS.get(profile.gender.strip().lower())
    if offset is None:
        logger.debug(f"Using averaged BMR offset for gender '{profile.gender}'")
        offset = BMR_AVERAGED_OFFSET

    bmr = 10 * profile.weight + 6.25 * profile.height - 5 * profile.age + offset
    return round(bmr)


def calculate_tdee(bmr: int | None, activity_level: str | None) -> int | None:
    """Total daily energy expenditure from BMR and an activity level label."""
    if bmr is None:
        return None

    level = (activity_level or "sedentary").strip().lower()
    multiplier = ACTIVITY_MULTIPLIERS.get(level)
    if multiplier is None:
        logger.warning(
            f"Unknown activity level '{activity_level}', defaulting multiplier to {DEFAULT_ACTIVITY_MULTIPLIER}"
        )
        multiplier = DEFAULT_ACTIVITY_MULTIPLIER

    return round(bmr * multiplier)


def with_energy_estimates(profile: UserProfile) -> UserProfile:
    """Return a copy of the profile with BMR/TDEE recomputed from its fields."""
    bmr = calculate_bmr(profile)
    tdee = calculate_tdee(bmr, profile.activity_level)
    return profile.model_copy(update={"bmr": bmr, "tdee": tdee})


def net_calories(tdee: float | None, consumed: float, burned: float) -> float | None:
    """TDEE - consumed + burned; undefined when TDEE is undefined."""
    if tdee is None:
        return None
    return tdee - consumed + burned


def summarize_calories(
    food_logs: Iterable[FoodLogEntry],
    exercise_logs: Iterable[ExerciseLogEntry],
    tdee: float | None,
) -> CalorieSummary:
    """Total consumed/burned calories for a day and the resulting net."""
    consumed = sum(log.calories or 0 for log in food_logs)
    burned = sum(log.calories_burned or 0 for log in exercise_logs)
    return CalorieSummary(
        consumed=consumed,
        burned=burned,
        tdee=tdee,
        net=net_calories(tdee, consumed, burned),
    )
