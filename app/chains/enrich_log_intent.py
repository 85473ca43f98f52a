"""Turn a raw food/exercise phrase into a fully specified log entry."""

import json
from datetime import datetime, timezone

from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import complete_json, parse_llm_json_dict
from app.core.logging import get_logger
from app.core.schemas_conversation import (
    ExerciseLogEntry,
    FoodLogEntry,
    LogIntent,
    LogSource,
    Macros,
)

logger = get_logger(__name__)

DEFAULT_PORTION = "1 serving (estimated)"

SYSTEM_PROMPT = "You extract and estimate nutrition or exercise data and respond with ONLY a JSON object."

FOOD_PROMPT = """Estimate nutrition for the food described below, assuming one typical serving.
Name the primary food item. Infer the meal type (breakfast, lunch, dinner or snack) from context
such as "for breakfast"; use snack when there is no hint.

Description: "{phrase}"

Respond with:
{{"name": "string", "calories": number, "meal_type": "breakfast"|"lunch"|"dinner"|"snack",
  "macros": {{"protein": number, "carbs": number, "fat": number}}}}

If the details cannot reasonably be estimated, respond with {{"error": "reason"}}."""

EXERCISE_PROMPT = """Estimate the exercise session described below, assuming a typical session when
details are missing. Name the primary exercise and classify its type (cardio, strength,
flexibility, sports or other). Give the duration in minutes and the calories burned; use null for
either one you cannot estimate, but provide at least one of them.

Description: "{phrase}"

Respond with:
{{"name": "string", "type": "cardio"|"strength"|"flexibility"|"sports"|"other",
  "duration": number|null, "calories_burned": number|null}}

If the details cannot reasonably be estimated, respond with {{"error": "reason"}}."""


def _build_food(data: dict, intent: LogIntent, base: dict) -> FoodLogEntry | None:
    if not isinstance(data.get("name"), str) or not isinstance(data.get("calories"), (int, float)):
        logger.warning(f"Food enrichment missing name/calories for '{intent.raw_phrase}'")
        return None

    macros = data.get("macros")
    return FoodLogEntry(
        **base,
        name=data["name"].strip(),
        calories=data["calories"],
        meal_type=data.get("meal_type") or data.get("mealType"),
        macros=Macros.model_validate(macros) if isinstance(macros, dict) else None,
        portion_size=DEFAULT_PORTION,
    )


def _build_exercise(data: dict, intent: LogIntent, base: dict) -> ExerciseLogEntry | None:
    duration = data.get("duration")
    calories_burned = data.get("calories_burned", data.get("caloriesBurned"))
    if not isinstance(data.get("name"), str) or (duration is None and calories_burned is None):
        logger.warning(f"Exercise enrichment missing name/duration/calories for '{intent.raw_phrase}'")
        return None

    return ExerciseLogEntry(
        **base,
        name=data["name"].strip(),
        type=data.get("type"),
        duration=duration if isinstance(duration, (int, float)) else 0,
        calories_burned=calories_burned if isinstance(calories_burned, (int, float)) else 0,
        intensity="moderate",
    )


async def enrich_log_intent(
    intent: LogIntent, user_id: str | None, target_date: str
) -> FoodLogEntry | ExerciseLogEntry | None:
    """
    Estimate the details of one log intent.

    The returned entry is always ``agentic``, dated ``target_date`` and
    described by the raw phrase. Returns None when the model declines or
    answers with something unusable.

    Raises:
        Exception: If the completion call itself fails
    """
    settings = get_settings()
    template = FOOD_PROMPT if intent.kind == "food" else EXERCISE_PROMPT

    raw = await complete_json(
        SYSTEM_PROMPT,
        template.format(phrase=intent.raw_phrase),
        model=settings.ENRICHMENT_MODEL,
        temperature=settings.ENRICHMENT_TEMPERATURE,
        chain="enrich_log_intent",
        user_id=user_id,
    )

    try:
        data = parse_llm_json_dict(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Enrichment output for '{intent.raw_phrase}' was not JSON: {e}")
        return None

    if data.get("error"):
        logger.info(f"Enrichment declined '{intent.raw_phrase}': {data['error']}")
        return None

    base = {
        "user_id": user_id,
        "description": intent.raw_phrase,
        "logged_at": datetime.now(timezone.utc).isoformat(),
        "date": target_date,
        "source": LogSource.AGENTIC.value,
    }

    try:
        if intent.kind == "food":
            entry = _build_food(data, intent, base)
        else:
            entry = _build_exercise(data, intent, base)
    except ValidationError as e:
        logger.warning(f"Enrichment output for '{intent.raw_phrase}' failed validation: {e}")
        return None

    if entry is not None:
        logger.info(f"Enriched {intent.kind} intent '{intent.raw_phrase}' as '{entry.name}'")
    return entry
