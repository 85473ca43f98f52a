"""Conversation turn graph for the DailyBalance answer engine.

One graph run answers one user message:

    extract_date -> fetch_daily_context -> [fetch_profile] -> retrieve_history
    -> retrieve_knowledge -> reason -> enrich_intents -> persist_logs
    -> synthesize_response

The profile fetch only runs for personalized queries. Every stage degrades to
empty/None results on external failures so the turn always reaches synthesis.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Annotated, Any

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from pydantic import BaseModel, Field

from app.chains.enrich_log_intent import enrich_log_intent
from app.chains.extract_target_date import extract_target_date
from app.chains.generate_insights import generate_insights
from app.chains.retrieve_knowledge import retrieve_knowledge
from app.chains.synthesize_answer import (
    build_conversation_window,
    persist_interaction,
    recompute_calorie_summary,
    synthesize_answer,
)
from app.core.agentic_logging import PersistenceReport, schedule_log_saves
from app.core.calculations import summarize_calories
from app.core.config import get_settings
from app.core.logging import get_logger, log_with_context
from app.core.personalization import (
    needs_personalization,
    route_after_daily_context,
    time_of_day_label,
)
from app.core.schemas_conversation import (
    CalorieSummary,
    ExerciseLogEntry,
    FoodLogEntry,
    InteractionLogEntry,
    KnowledgeResult,
    ReasoningResult,
    Source,
    StructuredAnswer,
    UserProfile,
)
from app.db.daily_logs import fetch_daily_context
from app.db.log_search import retrieve_similar_logs
from app.db.profiles import load_profile

logger = get_logger(__name__)


# =========================
# State Definition
# =========================


class ConversationState(BaseModel):
    """State for one conversation turn."""

    # Input
    messages: Annotated[list[AnyMessage], add_messages] = Field(default_factory=list)
    user_id: str | None = None
    session_id: str | None = None
    turn_id: str | None = None
    guest_profile: UserProfile | None = None

    # Daily snapshot
    target_date: str | None = None
    time_of_day: str | None = None
    daily_food_logs: list[FoodLogEntry] = Field(default_factory=list)
    daily_exercise_logs: list[ExerciseLogEntry] = Field(default_factory=list)
    daily_interaction_logs: list[InteractionLogEntry] = Field(default_factory=list)

    # Personalization
    personalize: bool = False
    user_profile: UserProfile | None = None

    # Historical context
    historical_food_logs: list[FoodLogEntry] = Field(default_factory=list)
    historical_exercise_logs: list[ExerciseLogEntry] = Field(default_factory=list)
    historical_interaction_logs: list[InteractionLogEntry] = Field(default_factory=list)

    # Analysis
    knowledge: KnowledgeResult | None = None
    calorie_summary: CalorieSummary | None = None
    reasoning: ReasoningResult | None = None

    # Agentic logging
    enriched_logs: list[FoodLogEntry | ExerciseLogEntry] = Field(default_factory=list)
    persistence: PersistenceReport | None = None

    # Output
    structured_answer: StructuredAnswer | None = None
    current_step: str | None = None

    class Config:
        arbitrary_types_allowed = True


@dataclass
class ConversationTurnResult:
    """Outcome of one conversation turn."""

    answer: StructuredAnswer
    sources: list[Source]
    target_date: str
    persistence: PersistenceReport | None = None


def _latest_query(state: ConversationState) -> str:
    for message in reversed(state.messages):
        if isinstance(message, HumanMessage):
            return str(message.content)
    return ""


def _log(state: ConversationState, msg: str, **extra: Any) -> None:
    log_with_context(
        logger,
        logging.INFO,
        msg,
        turn_id=state.turn_id,
        user_id=state.user_id,
        session_id=state.session_id,
        **extra,
    )


def _tdee(state: ConversationState) -> float | None:
    return state.user_profile.tdee if state.user_profile else None


# =========================
# Node Functions
# =========================


async def extract_date(state: ConversationState) -> dict[str, Any]:
    """Resolve the date the query is about and the current time of day."""
    target_date = await extract_target_date(_latest_query(state), user_id=state.user_id)
    _log(state, f"Target date resolved to {target_date}", stage="extract_date")
    return {
        "target_date": target_date,
        "time_of_day": time_of_day_label(),
        "current_step": "extract_date",
    }


async def fetch_daily_context_node(state: ConversationState) -> dict[str, Any]:
    """Snapshot the day's logs and decide whether to personalize."""
    food, exercise, interactions = await fetch_daily_context(state.user_id, state.target_date)
    personalize = needs_personalization(_latest_query(state))

    _log(
        state,
        f"Daily context: {len(food)} food, {len(exercise)} exercise, "
        f"{len(interactions)} interactions; personalize={personalize}",
        stage="fetch_daily_context",
    )
    return {
        "daily_food_logs": food,
        "daily_exercise_logs": exercise,
        "daily_interaction_logs": interactions,
        "personalize": personalize,
        "current_step": "fetch_daily_context",
    }


async def fetch_profile(state: ConversationState) -> dict[str, Any]:
    """Load the stored profile, overlay guest data, derive BMR/TDEE."""
    try:
        profile = await load_profile(state.user_id, state.guest_profile)
    except Exception as e:
        logger.warning(
            f"Profile unavailable, continuing without it: {e}",
            extra={"turn_id": state.turn_id, "stage": "fetch_profile"},
        )
        profile = None

    _log(
        state,
        f"Profile loaded: tdee={profile.tdee if profile else None}",
        stage="fetch_profile",
    )
    return {"user_profile": profile, "current_step": "fetch_profile"}


async def retrieve_history(state: ConversationState) -> dict[str, Any]:
    """Find the user's past records most similar to the query."""
    settings = get_settings()
    food, exercise, interactions = await retrieve_similar_logs(
        state.user_id, _latest_query(state), settings.HISTORY_TOP_K
    )

    _log(
        state,
        f"Historical matches: {len(food)} food, {len(exercise)} exercise, {len(interactions)} interactions",
        stage="retrieve_history",
    )
    return {
        "historical_food_logs": food,
        "historical_exercise_logs": exercise,
        "historical_interaction_logs": interactions,
        "current_step": "retrieve_history",
    }


async def retrieve_knowledge_node(state: ConversationState) -> dict[str, Any]:
    """Fetch reference facts for the query."""
    knowledge = await retrieve_knowledge(_latest_query(state), user_id=state.user_id)
    _log(
        state,
        f"Knowledge {'retrieved' if knowledge.content else 'unavailable'}",
        stage="retrieve_knowledge",
        source_count=len(knowledge.sources),
    )
    return {"knowledge": knowledge, "current_step": "retrieve_knowledge"}


async def reason(state: ConversationState) -> dict[str, Any]:
    """Precompute the calorie summary and run the reasoning completion."""
    summary = summarize_calories(state.daily_food_logs, state.daily_exercise_logs, _tdee(state))

    reasoning = await generate_insights(
        _latest_query(state),
        summary,
        knowledge=state.knowledge,
        profile=state.user_profile,
        time_of_day=state.time_of_day or time_of_day_label(),
        daily_food_logs=state.daily_food_logs,
        daily_exercise_logs=state.daily_exercise_logs,
        daily_interaction_logs=state.daily_interaction_logs,
        historical_food_logs=state.historical_food_logs,
        historical_exercise_logs=state.historical_exercise_logs,
        historical_interaction_logs=state.historical_interaction_logs,
        user_id=state.user_id,
    )

    _log(
        state,
        f"Reasoning complete: {len(reasoning.intents)} intents, error={reasoning.error}",
        stage="reason",
    )
    return {"calorie_summary": summary, "reasoning": reasoning, "current_step": "reason"}


async def enrich_intents(state: ConversationState) -> dict[str, Any]:
    """Enrich every log intent concurrently, dropping failures."""
    intents = state.reasoning.intents if state.reasoning else []
    if not intents or not state.user_id:
        return {"current_step": "enrich_intents"}

    results = await asyncio.gather(
        *(enrich_log_intent(intent, state.user_id, state.target_date) for intent in intents),
        return_exceptions=True,
    )

    enriched = []
    for intent, result in zip(intents, results):
        if isinstance(result, BaseException):
            logger.warning(
                f"Enrichment failed for '{intent.raw_phrase}': {result}",
                extra={"turn_id": state.turn_id, "stage": "enrich_intents"},
            )
        elif result is not None:
            enriched.append(result)

    _log(state, f"Enriched {len(enriched)}/{len(intents)} intents", stage="enrich_intents")
    return {"enriched_logs": enriched, "current_step": "enrich_intents"}


async def persist_logs(state: ConversationState) -> dict[str, Any]:
    """Dedup enriched logs against the snapshot and start background saves."""
    report = schedule_log_saves(
        state.enriched_logs,
        state.daily_food_logs,
        state.daily_exercise_logs,
        turn_id=state.turn_id,
    )
    _log(
        state,
        f"Scheduled {len(report.scheduled)} agentic saves, {report.count('duplicate')} duplicates",
        stage="persist_logs",
    )
    return {"persistence": report, "current_step": "persist_logs"}


async def synthesize_response(state: ConversationState) -> dict[str, Any]:
    """Recompute calories, write the final answer and log the interaction."""
    settings = get_settings()
    query = _latest_query(state)
    report = state.persistence

    summary = await recompute_calorie_summary(
        state.user_id,
        state.target_date,
        state.daily_food_logs,
        state.daily_exercise_logs,
        report.scheduled_food if report else [],
        report.scheduled_exercise if report else [],
        _tdee(state),
        turn_id=state.turn_id,
    )

    reasoning = state.reasoning
    if reasoning is not None:
        reasoning = reasoning.model_copy(
            update={"derived_data": {**reasoning.derived_data, **summary.as_derived_data()}}
        )

    history = build_conversation_window(
        state.daily_interaction_logs,
        state.messages,
        state.session_id,
        settings.CONVERSATION_WINDOW_TURNS,
    )
    answer = await synthesize_answer(query, reasoning, summary, history, user_id=state.user_id)

    sources = state.knowledge.sources if state.knowledge else []
    await persist_interaction(
        state.user_id,
        state.session_id,
        query,
        answer,
        sources,
        metadata={
            "turn_id": state.turn_id,
            "target_date": state.target_date,
            "personalized": state.personalize,
            "agentic_logs": [e.name for e in report.scheduled] if report else [],
        },
    )

    _log(state, f"Answer synthesized, error={answer.error}", stage="synthesize_response")
    return {
        "structured_answer": answer,
        "calorie_summary": summary,
        "reasoning": reasoning,
        "messages": [AIMessage(content=answer.text)],
        "current_step": "synthesize_response",
    }


# =========================
# Build Graph
# =========================


def build_conversation_graph() -> StateGraph:
    """Build the conversation turn graph.

    Compiled without a checkpointer: the state carries live asyncio tasks
    (the persistence report), which cannot be serialized.
    """
    graph = StateGraph(ConversationState)

    graph.add_node("extract_date", extract_date)
    graph.add_node("fetch_daily_context", fetch_daily_context_node)
    graph.add_node("fetch_profile", fetch_profile)
    graph.add_node("retrieve_history", retrieve_history)
    graph.add_node("retrieve_knowledge", retrieve_knowledge_node)
    graph.add_node("reason", reason)
    graph.add_node("enrich_intents", enrich_intents)
    graph.add_node("persist_logs", persist_logs)
    graph.add_node("synthesize_response", synthesize_response)

    graph.set_entry_point("extract_date")
    graph.add_edge("extract_date", "fetch_daily_context")
    graph.add_conditional_edges(
        "fetch_daily_context",
        route_after_daily_context,
        {
            "fetch_profile": "fetch_profile",
            "retrieve_history": "retrieve_history",
        },
    )
    graph.add_edge("fetch_profile", "retrieve_history")
    graph.add_edge("retrieve_history", "retrieve_knowledge")
    graph.add_edge("retrieve_knowledge", "reason")
    graph.add_edge("reason", "enrich_intents")
    graph.add_edge("enrich_intents", "persist_logs")
    graph.add_edge("persist_logs", "synthesize_response")
    graph.add_edge("synthesize_response", END)

    return graph.compile()


# =========================
# Main Entry Point
# =========================


async def run_conversation_turn(
    user_id: str,
    query: str,
    session_id: str | None = None,
    guest_profile: UserProfile | None = None,
) -> ConversationTurnResult:
    """Answer one user message.

    Args:
        user_id: User (or guest) id
        query: Free-text user message
        session_id: Conversation session id
        guest_profile: Profile fields supplied by a guest client

    Returns:
        ConversationTurnResult with the answer, knowledge sources, resolved
        date and the (still running) persistence report
    """
    turn_id = str(uuid.uuid4())
    logger.info(
        "Starting conversation turn",
        extra={"turn_id": turn_id, "user_id": user_id, "session_id": session_id},
    )

    graph = build_conversation_graph()

    initial_state = ConversationState(
        messages=[HumanMessage(content=query)],
        user_id=user_id,
        session_id=session_id,
        turn_id=turn_id,
        guest_profile=guest_profile,
    )

    fs = await graph.ainvoke(initial_state)

    # LangGraph StateGraph.ainvoke() returns a dict in v1.0+
    _g = fs.get if isinstance(fs, dict) else lambda k, d=None: getattr(fs, k, d)

    knowledge = _g("knowledge")
    result = ConversationTurnResult(
        answer=_g("structured_answer") or StructuredAnswer(text="", error="No answer produced"),
        sources=knowledge.sources if knowledge else [],
        target_date=_g("target_date") or "",
        persistence=_g("persistence"),
    )

    logger.info(
        f"Conversation turn complete for {result.target_date}",
        extra={"turn_id": turn_id, "user_id": user_id, "session_id": session_id},
    )
    return result
