"""Final answer synthesis and interaction logging."""

import json
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import ValidationError

from app.core.agentic_logging import dedup_key
from app.core.calculations import summarize_calories
from app.core.config import get_settings
from app.core.embeddings import embed_text_async
from app.core.llm import complete_json, parse_llm_json
from app.core.logging import get_logger
from app.core.schemas_conversation import (
    CalorieSummary,
    ExerciseLogEntry,
    FoodLogEntry,
    InteractionLogEntry,
    LogKind,
    ReasoningResult,
    Source,
    StructuredAnswer,
)
from app.db.daily_logs import get_daily_logs, save_log

logger = get_logger(__name__)

APOLOGY_TEXT = "Sorry, I couldn't generate a response right now. Please try again."

REASONING_UNUSABLE = "The analysis step failed for this turn; answer from the calorie summary and conversation only."

SYSTEM_PROMPT = """You are DailyBalance, a friendly nutrition and exercise assistant.
Turn the analysis below into the final reply to the user.

- Answer the user's latest message directly, using the insights provided.
- Weave in the suggestions and warnings where they help; do not list them mechanically.
- Any calorie numbers you mention must come from the calorie summary, which is authoritative.
- Keep continuity with the recent conversation.
- Be encouraging, clear and brief.

Respond with ONLY a JSON object:
{"text": "reply to the user", "suggestions": ["short actionable suggestion"], "data_summary": {"key": "value"}}"""

USER_TEMPLATE = """Latest user message: {query}

Analysis:
{reasoning}

Calorie summary (authoritative):
{calorie_summary}

Recent conversation (oldest first):
{history}"""


def apology(error: str) -> StructuredAnswer:
    """The fixed user-facing reply when synthesis fails."""
    return StructuredAnswer(text=APOLOGY_TEXT, error=error)


def build_conversation_window(
    interaction_logs: list[InteractionLogEntry],
    messages: list[BaseMessage],
    session_id: str | None,
    max_turns: int,
) -> list[dict[str, str]]:
    """
    Recent turns as role/content pairs, oldest first.

    Earlier turns come from the day's interaction logs for the session; the
    running messages follow, minus the trailing user message being answered.
    """
    window: list[dict[str, str]] = []

    for log in interaction_logs:
        if session_id and log.session_id and log.session_id != session_id:
            continue
        window.append({"role": "user", "content": log.query})
        if log.llm_response and log.llm_response.text:
            window.append({"role": "assistant", "content": log.llm_response.text})

    running = list(messages)
    if running and isinstance(running[-1], HumanMessage):
        running = running[:-1]
    for message in running:
        role = "assistant" if isinstance(message, AIMessage) else "user"
        window.append({"role": role, "content": str(message.content)})

    return window[-max_turns * 2:] if max_turns > 0 else []


def fold_scheduled(
    visible: list[Any], scheduled: list[Any]
) -> list[Any]:
    """
    Add scheduled entries that are not yet visible, matched by dedup key.

    Each visible row accounts for one scheduled entry with the same key, so
    two identical saves with only one committed still count twice.
    """
    unmatched = Counter(dedup_key(entry) for entry in visible)
    pending = []
    for entry in scheduled:
        key = dedup_key(entry)
        if unmatched[key] > 0:
            unmatched[key] -= 1
        else:
            pending.append(entry)
    return [*visible, *pending]


async def recompute_calorie_summary(
    user_id: str | None,
    target_date: str,
    snapshot_food: list[FoodLogEntry],
    snapshot_exercise: list[ExerciseLogEntry],
    scheduled_food: list[FoodLogEntry],
    scheduled_exercise: list[ExerciseLogEntry],
    tdee: float | None,
    turn_id: str | None = None,
) -> CalorieSummary:
    """
    Calorie totals after this turn's own logs.

    Food is re-read from the store; entries scheduled this turn but not yet
    committed are folded in so each is counted exactly once. A failed re-read
    falls back to the start-of-turn snapshot.
    """
    food = snapshot_food
    if user_id:
        try:
            food = await get_daily_logs(LogKind.FOOD, user_id, target_date)
        except Exception as e:
            logger.warning(
                f"Food log re-read failed, using snapshot: {e}", extra={"turn_id": turn_id}
            )

    return summarize_calories(
        fold_scheduled(food, scheduled_food),
        fold_scheduled(snapshot_exercise, scheduled_exercise),
        tdee,
    )


async def synthesize_answer(
    query: str,
    reasoning: ReasoningResult | None,
    calorie_summary: CalorieSummary,
    history: list[dict[str, str]],
    user_id: str | None = None,
) -> StructuredAnswer:
    """
    Produce the user-facing answer.

    ``data_summary`` always carries the authoritative calorie fields. Any
    failure yields the fixed apology with ``error`` set.
    """
    settings = get_settings()

    if reasoning is None or reasoning.error:
        reasoning_text = REASONING_UNUSABLE
    else:
        reasoning_text = json.dumps(
            reasoning.model_dump(exclude={"intents", "error"}), default=str
        )

    user_content = USER_TEMPLATE.format(
        query=query,
        reasoning=reasoning_text,
        calorie_summary=json.dumps(calorie_summary.as_derived_data()),
        history=json.dumps(history) if history else "none",
    )

    try:
        raw = await complete_json(
            SYSTEM_PROMPT,
            user_content,
            model=settings.CONVERSATION_MODEL,
            temperature=settings.CONVERSATION_TEMPERATURE,
            chain="synthesize_answer",
            user_id=user_id,
        )
        answer = parse_llm_json(raw, StructuredAnswer)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Final answer could not be parsed: {e}")
        return apology(f"Malformed answer: {e}")
    except Exception as e:
        logger.error(f"Final answer synthesis failed: {e}")
        return apology(f"Synthesis failed: {e}")

    if not answer.text.strip():
        logger.error("Final answer text was empty")
        return apology("Empty answer text")

    answer.error = None
    answer.data_summary = {**(answer.data_summary or {}), **calorie_summary.as_derived_data()}
    return answer


async def persist_interaction(
    user_id: str | None,
    session_id: str | None,
    query: str,
    answer: StructuredAnswer,
    sources: list[Source],
    metadata: dict[str, Any] | None = None,
) -> InteractionLogEntry | None:
    """
    Save one interaction log row, embedded when possible.

    Failures are logged and swallowed; returns the saved entry or None.
    """
    entry = InteractionLogEntry(
        user_id=user_id,
        session_id=session_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        query=query,
        llm_response=answer,
        sources=sources,
        metadata=metadata or {},
    )

    try:
        embedding = await embed_text_async(
            f"User Query: {query}\nAssistant Response: {answer.text}"
        )
        record = entry.model_dump(mode="json", exclude={"id"})
        if embedding is not None:
            record["embedding"] = embedding
        saved = await save_log(LogKind.INTERACTION, record)
        return entry.model_copy(update={"id": saved.get("id")})
    except Exception as e:
        logger.error(f"Failed to persist interaction log: {e}", extra={"session_id": session_id})
        return None
