"""Supabase client initialization and async execution helper."""

import asyncio
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached singleton).

    Returns:
        Supabase client configured with service role key

    Raises:
        RuntimeError: If client initialization fails
    """
    try:
        settings = get_settings()
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e


async def execute_async(query: Any) -> Any:
    """Run a built PostgREST query (or RPC) on a worker thread.

    The supabase client is synchronous; pipeline stages await this so that
    sibling reads issued with asyncio.gather actually overlap.
    """
    return await asyncio.to_thread(query.execute)
