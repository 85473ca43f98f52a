"""Vector similarity search over a user's past logs.

Food and exercise rows go through the shared ``match_documents`` RPC, which
takes a query embedding, a match count and a ``{"user_id", "table_name"}``
filter. Interaction rows have their own ``match_interaction_logs`` RPC
(see supabase/migrations) because ``match_documents`` only returns log-shaped
columns. Both return rows with a ``similarity`` score.
"""

import asyncio
from typing import Any

from app.core.embeddings import embed_text_async
from app.core.logging import get_logger
from app.core.schemas_conversation import LogKind
from app.db.daily_logs import LOG_TABLES, parse_log_rows
from app.db.supabase_client import execute_async, get_supabase

logger = get_logger(__name__)

SEARCH_KINDS = (LogKind.FOOD, LogKind.EXERCISE, LogKind.INTERACTION)

INTERACTION_MATCH_RPC = "match_interaction_logs"


def _match_call(kind: LogKind, user_id: str, embedding: list[float], top_k: int) -> tuple[str, dict[str, Any]]:
    if kind == LogKind.INTERACTION:
        return INTERACTION_MATCH_RPC, {
            "query_embedding": embedding,
            "match_count": top_k,
            "filter_user_id": user_id,
        }
    return "match_documents", {
        "query_embedding": embedding,
        "match_count": top_k,
        "filter": {"user_id": user_id, "table_name": LOG_TABLES[kind]},
    }


async def search_logs(
    kind: LogKind, user_id: str, embedding: list[float], top_k: int
) -> list[Any]:
    """
    Find a user's records most similar to an embedding.

    Args:
        kind: Log category to search
        user_id: User id used in the RPC filter
        embedding: Query embedding
        top_k: Maximum number of matches

    Returns:
        Validated log entries, most similar first

    Raises:
        Exception: If the RPC call fails
    """
    supabase = get_supabase()
    table = LOG_TABLES[kind]
    rpc_name, params = _match_call(kind, user_id, embedding, top_k)

    try:
        response = await execute_async(supabase.rpc(rpc_name, params))
        rows = sorted(
            response.data or [],
            key=lambda row: row.get("similarity") or 0.0,
            reverse=True,
        )
        return parse_log_rows(kind, rows)

    except Exception as e:
        logger.error(f"Similarity search on {table} ({rpc_name}) failed for user {user_id}: {e}")
        raise


async def retrieve_similar_logs(
    user_id: str | None, query: str, top_k: int
) -> tuple[list[Any], list[Any], list[Any]]:
    """
    Embed a query and search food, exercise and interaction history concurrently.

    A missing user id or embedding short-circuits to three empty lists; a
    failed search empties only its own category.

    Returns:
        (food_matches, exercise_matches, interaction_matches)
    """
    if not user_id:
        return [], [], []

    embedding = await embed_text_async(query)
    if embedding is None:
        logger.info("No query embedding, skipping historical retrieval", extra={"user_id": user_id})
        return [], [], []

    results = await asyncio.gather(
        *(search_logs(kind, user_id, embedding, top_k) for kind in SEARCH_KINDS),
        return_exceptions=True,
    )

    food, exercise, interaction = (
        [] if isinstance(result, BaseException) else result for result in results
    )
    return food, exercise, interaction
