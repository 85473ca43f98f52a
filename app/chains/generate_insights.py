"""Reasoning stage: personalized insights plus unlogged food/exercise intents.

One JSON-mode completion combines the day's logs, similar past records,
profile, time of day and retrieved facts into insights, suggestions and
warnings. The same call scans the query for first-person, completed food or
exercise events that are not in today's logs and returns them as LogIntents
for enrichment.

Calorie totals are never left to the model: the precomputed CalorieSummary is
echoed into the prompt and then written over ``derived_data`` after parsing.
"""

import json
from typing import Any

from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import complete_json, parse_llm_json_dict
from app.core.logging import get_logger
from app.core.schemas_conversation import (
    CalorieSummary,
    ExerciseLogEntry,
    FoodLogEntry,
    InteractionLogEntry,
    KnowledgeResult,
    LogIntent,
    ReasoningResult,
    UserProfile,
)

logger = get_logger(__name__)

KNOWLEDGE_UNAVAILABLE = "Factual reference data is unavailable for this turn."
KNOWLEDGE_FALLBACK_WARNING = (
    "External nutrition and exercise facts were unavailable, so figures are general estimates."
)

SYSTEM_PROMPT = """You are the reasoning step of DailyBalance, a personal nutrition and exercise assistant.

You receive the user's query, reference facts, the user's profile (may be empty), the time of day,
the food/exercise/conversation logs for the target date, similar records from the user's history,
and a precomputed calorie summary for the target date.

Work through these steps in order:
1. Scan the query for first-person phrases describing food the user has already eaten or exercise
   the user has already done (e.g. "I had an apple", "I ran 5k this morning"). Ignore plans,
   hypotheticals and questions ("should I eat...", "I might run later").
2. Drop any phrase that matches an entry already in today's logs: same name (case-insensitive) and
   same meal_type for food, or same type for exercise.
3. Write concise insights tailored to this user and to the time of day, plus actionable suggestions
   and warnings (e.g. nutrient gaps, large deficits, missing profile data).
4. Copy the calorie summary values exactly into derived_data. Do not recalculate them.
5. For each event that survived step 2, emit one log intent with its kind ("food" or "exercise")
   and the user's raw phrase for it.

Respond with ONLY a JSON object:
{
  "insights": "string",
  "suggestions": ["string"],
  "warnings": ["string"],
  "derived_data": {"consumed_calories": number, "burned_calories": number, "tdee": number|null,
                   "net_calories": number|null, "remaining_calories": number|null},
  "log_intents": [{"kind": "food"|"exercise", "raw_phrase": "string"}]
}"""

USER_TEMPLATE = """User query: {query}

Time of day: {time_of_day}

Reference facts:
{knowledge}

User profile:
{profile}

Calorie summary for the target date:
{calorie_summary}

Today's food logs:
{food_logs}

Today's exercise logs:
{exercise_logs}

Today's earlier conversation:
{interaction_logs}

Similar past food logs:
{historical_food}

Similar past exercise logs:
{historical_exercise}

Similar past conversations:
{historical_interactions}"""


def _dump(items: list[dict[str, Any]] | dict[str, Any] | None) -> str:
    if not items:
        return "none"
    return json.dumps(items, default=str)


def _food_rows(logs: list[FoodLogEntry]) -> list[dict[str, Any]]:
    return [
        {"name": log.name, "meal_type": log.meal_type, "calories": log.calories, "date": log.date}
        for log in logs
    ]


def _exercise_rows(logs: list[ExerciseLogEntry]) -> list[dict[str, Any]]:
    return [
        {
            "name": log.name,
            "type": log.type,
            "duration": log.duration,
            "calories_burned": log.calories_burned,
            "date": log.date,
        }
        for log in logs
    ]


def _interaction_rows(logs: list[InteractionLogEntry]) -> list[dict[str, Any]]:
    return [
        {
            "timestamp": log.timestamp,
            "query": log.query,
            "answer": log.llm_response.text if log.llm_response else None,
        }
        for log in logs
    ]


def _parse_intents(raw_intents: Any) -> list[LogIntent]:
    """Validate intents one by one, dropping malformed entries."""
    if not isinstance(raw_intents, list):
        return []

    intents = []
    for item in raw_intents:
        try:
            intents.append(LogIntent.model_validate(item))
        except ValidationError:
            logger.warning(f"Dropping malformed log intent: {item!r}")
    return intents


async def generate_insights(
    query: str,
    calorie_summary: CalorieSummary,
    knowledge: KnowledgeResult | None = None,
    profile: UserProfile | None = None,
    time_of_day: str = "Midday",
    daily_food_logs: list[FoodLogEntry] | None = None,
    daily_exercise_logs: list[ExerciseLogEntry] | None = None,
    daily_interaction_logs: list[InteractionLogEntry] | None = None,
    historical_food_logs: list[FoodLogEntry] | None = None,
    historical_exercise_logs: list[ExerciseLogEntry] | None = None,
    historical_interaction_logs: list[InteractionLogEntry] | None = None,
    user_id: str | None = None,
) -> ReasoningResult:
    """
    Run the reasoning completion.

    Never raises: completion failures and malformed output come back as
    ``ReasoningResult(insights="", error=...)``.
    """
    settings = get_settings()
    has_knowledge = bool(knowledge and knowledge.content)

    user_content = USER_TEMPLATE.format(
        query=query,
        time_of_day=time_of_day,
        knowledge=knowledge.content if has_knowledge else KNOWLEDGE_UNAVAILABLE,
        profile=_dump(profile.model_dump(exclude_none=True) if profile else None),
        calorie_summary=_dump(calorie_summary.as_derived_data()),
        food_logs=_dump(_food_rows(daily_food_logs or [])),
        exercise_logs=_dump(_exercise_rows(daily_exercise_logs or [])),
        interaction_logs=_dump(_interaction_rows(daily_interaction_logs or [])),
        historical_food=_dump(_food_rows(historical_food_logs or [])),
        historical_exercise=_dump(_exercise_rows(historical_exercise_logs or [])),
        historical_interactions=_dump(_interaction_rows(historical_interaction_logs or [])),
    )

    try:
        raw = await complete_json(
            SYSTEM_PROMPT,
            user_content,
            model=settings.REASONING_MODEL,
            temperature=settings.REASONING_TEMPERATURE,
            chain="generate_insights",
            user_id=user_id,
        )
        parsed = parse_llm_json_dict(raw)
        log_intents = parsed.pop("log_intents", None)
        short_intents = parsed.pop("intents", None)
        raw_intents = log_intents if log_intents is not None else short_intents
        result = ReasoningResult.model_validate(parsed)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Reasoning output could not be parsed: {e}")
        return ReasoningResult(insights="", error=f"Malformed reasoning output: {e}")
    except Exception as e:
        logger.error(f"Reasoning completion failed: {e}")
        return ReasoningResult(insights="", error=f"Reasoning failed: {e}")

    result.intents = _parse_intents(raw_intents)
    result.derived_data = {**result.derived_data, **calorie_summary.as_derived_data()}
    if not has_knowledge:
        result.warnings.append(KNOWLEDGE_FALLBACK_WARNING)

    logger.info(
        f"Reasoning produced {len(result.suggestions)} suggestions, {len(result.intents)} log intents"
    )
    return result
