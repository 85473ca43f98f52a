"""OpenAI embeddings for log rows, interactions and similarity queries."""

import asyncio

from openai import OpenAI

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def _get_client() -> OpenAI:
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY, max_retries=settings.LLM_MAX_RETRIES)


def embed_texts(texts: list[str]) -> list[list[float]]:
    """
    Embed a batch of texts with the configured model.

    Raises:
        ValueError: If a vector does not have EMBEDDING_DIM dimensions
            (the match_documents column is fixed-width)
    """
    if not texts:
        return []

    settings = get_settings()
    response = _get_client().embeddings.create(model=settings.EMBEDDING_MODEL, input=texts)

    vectors = [item.embedding for item in response.data]
    for i, vector in enumerate(vectors):
        if len(vector) != settings.EMBEDDING_DIM:
            raise ValueError(
                f"Embedding dimension mismatch for text {i}: "
                f"expected {settings.EMBEDDING_DIM}, got {len(vector)}"
            )

    logger.debug(f"Embedded {len(vectors)} texts with {settings.EMBEDDING_MODEL}")
    return vectors


async def embed_text_async(text: str) -> list[float] | None:
    """
    Embed a single text off the event loop, returning None instead of raising.

    Callers treat a missing vector as "skip similarity work" or
    "store the row without an embedding".
    """
    if not text or not text.strip():
        return None

    try:
        vectors = await asyncio.to_thread(embed_texts, [text])
    except Exception as e:
        logger.warning(f"Embedding unavailable, continuing without it: {e}")
        return None

    return vectors[0] if vectors else None
