"""Factual nutrition/exercise lookups via Perplexity."""

import asyncio
import time
from typing import Any

from openai import AsyncOpenAI

from app.core.config import get_settings
from app.core.llm_usage import log_llm_usage
from app.core.logging import get_logger
from app.core.schemas_conversation import KnowledgeResult, Source

logger = get_logger(__name__)

KNOWLEDGE_SYSTEM_PROMPT = (
    "You are a factual reference for nutrition, exercise and general health. "
    "Answer with concise, verifiable facts only: nutritional values (calories, macros, "
    "vitamins), exercise details (muscles worked, typical duration, intensity, energy cost) "
    "and definitions of health concepts. Do not give personal advice or opinions. "
    "If the question is ambiguous or outside this domain, say so plainly."
)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def extract_sources(response: Any) -> list[Source]:
    """
    Pull citations off a Perplexity completion.

    Prefers ``search_results`` (url + title) and falls back to the bare
    ``citations`` url list. Duplicate urls are dropped.
    """
    sources: list[Source] = []
    seen: set[str] = set()

    for item in getattr(response, "search_results", None) or []:
        url = _field(item, "url")
        if url and url not in seen:
            seen.add(url)
            sources.append(Source(url=url, title=_field(item, "title")))

    if sources:
        return sources

    for url in getattr(response, "citations", None) or []:
        if isinstance(url, str) and url and url not in seen:
            seen.add(url)
            sources.append(Source(url=url))

    return sources


async def retrieve_knowledge(query: str, user_id: str | None = None) -> KnowledgeResult:
    """
    Look up facts relevant to a query.

    Returns an empty KnowledgeResult (content None, no sources) when no API
    key is configured or the call fails.
    """
    settings = get_settings()
    if not settings.PERPLEXITY_API_KEY:
        logger.info("Knowledge retrieval skipped: PERPLEXITY_API_KEY not configured")
        return KnowledgeResult()

    client = AsyncOpenAI(
        api_key=settings.PERPLEXITY_API_KEY,
        base_url=settings.PERPLEXITY_BASE_URL,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=settings.LLM_MAX_RETRIES,
    )

    try:
        start = time.time()
        response = await client.chat.completions.create(
            model=settings.PERPLEXITY_MODEL,
            messages=[
                {"role": "system", "content": KNOWLEDGE_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            temperature=0.2,
        )
        duration_ms = int((time.time() - start) * 1000)
    except Exception as e:
        logger.warning(f"Knowledge retrieval failed: {e}")
        return KnowledgeResult()

    if response.usage:
        await asyncio.to_thread(
            log_llm_usage,
            workflow="conversation",
            model=settings.PERPLEXITY_MODEL,
            provider="perplexity",
            tokens_input=response.usage.prompt_tokens,
            tokens_output=response.usage.completion_tokens,
            duration_ms=duration_ms,
            user_id=user_id,
            chain="retrieve_knowledge",
        )

    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
        logger.warning("Knowledge retrieval returned no content")
        return KnowledgeResult()

    sources = extract_sources(response)
    logger.info(f"Knowledge retrieved with {len(sources)} sources")
    return KnowledgeResult(content=content.strip(), sources=sources)
