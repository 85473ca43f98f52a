"""API endpoints for conversational turns and daily history."""

from fastapi import APIRouter, HTTPException, Query

from app.chains.extract_target_date import validate_date_string
from app.core.logging import get_logger
from app.core.personalization import today_in_user_timezone
from app.core.schemas_conversation import (
    ConversationRequest,
    ConversationResponse,
    HistoryMessage,
    InteractionLogEntry,
    LogKind,
)
from app.db.daily_logs import get_daily_logs
from app.graphs.conversation_graph import run_conversation_turn

logger = get_logger(__name__)

router = APIRouter()


def format_history(logs: list[InteractionLogEntry]) -> list[HistoryMessage]:
    """Expand interaction logs into chronological user/assistant messages."""
    messages: list[HistoryMessage] = []
    for log in sorted(logs, key=lambda entry: entry.timestamp):
        if log.query:
            messages.append(HistoryMessage(role="user", timestamp=log.timestamp, query=log.query))
        if log.llm_response and log.llm_response.text.strip():
            messages.append(
                HistoryMessage(
                    role="assistant",
                    timestamp=log.timestamp,
                    answer=log.llm_response,
                    sources=log.sources,
                )
            )
        elif log.llm_response:
            logger.warning(f"Interaction log {log.id} has a response without text")
    return messages


@router.post("/conversation", response_model=ConversationResponse)
async def converse(request: ConversationRequest) -> ConversationResponse:
    """
    Answer one user message.

    Runs the full conversation turn: date resolution, daily context,
    optional personalization, history and knowledge retrieval, reasoning,
    agentic logging and answer synthesis. Pipeline failures surface as an
    apology answer with ``error`` set, not as an HTTP error.

    Raises:
        HTTPException 500: If the turn could not be run at all
    """
    try:
        result = await run_conversation_turn(
            user_id=request.user_id,
            query=request.query,
            session_id=request.session_id,
            guest_profile=request.guest_profile,
        )
    except Exception as e:
        logger.exception(f"Conversation turn failed for user {request.user_id}")
        raise HTTPException(status_code=500, detail="Conversation turn failed") from e

    return ConversationResponse(answer=result.answer, sources=result.sources)


@router.get("/conversation/history", response_model=list[HistoryMessage])
async def conversation_history(
    user_id: str = Query(..., min_length=1, description="User id"),
    date: str | None = Query(default=None, description="Date as YYYY-MM-DD (defaults to today)"),
) -> list[HistoryMessage]:
    """
    Get one day's conversation as chronological messages.

    Raises:
        HTTPException 400: If the date is malformed
        HTTPException 500: If the logs could not be read
    """
    target_date = today_in_user_timezone().isoformat()
    if date is not None:
        target_date = validate_date_string(date)
        if target_date is None:
            raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")

    try:
        logs = await get_daily_logs(LogKind.INTERACTION, user_id, target_date)
    except Exception as e:
        logger.error(f"Failed to load conversation history for {user_id} on {target_date}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch interaction logs") from e

    return format_history(logs)
