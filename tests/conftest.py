"""Pytest configuration and fixtures."""

import os

import pytest

from app.core.config import get_settings


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["PERPLEXITY_API_KEY"] = ""
    os.environ["ENGINE_ENV"] = "test"
    os.environ["USER_TIMEZONE"] = "UTC"
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
