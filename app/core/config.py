"""Configuration management for the DailyBalance Answer Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0, description="Per-request completion timeout")
    LLM_MAX_RETRIES: int = Field(default=1, description="Client-level retries for completion calls")

    # Perplexity configuration (knowledge retrieval is skipped when the key is empty)
    PERPLEXITY_API_KEY: str = Field(default="", description="Perplexity API key")
    PERPLEXITY_MODEL: str = Field(default="sonar", description="Perplexity model for factual lookups")
    PERPLEXITY_BASE_URL: str = Field(
        default="https://api.perplexity.ai", description="Perplexity OpenAI-compatible endpoint"
    )

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Date extraction
    DATE_EXTRACTION_MODEL: str = Field(default="gpt-4o-mini", description="Model for target date extraction")
    DATE_EXTRACTION_TEMPERATURE: float = Field(default=0.0)

    # Reasoning (insights + log intents)
    REASONING_MODEL: str = Field(default="gpt-4o-mini", description="Model for the reasoning stage")
    REASONING_TEMPERATURE: float = Field(default=0.5)

    # Final answer synthesis
    CONVERSATION_MODEL: str = Field(default="gpt-4o-mini", description="Model for final answer synthesis")
    CONVERSATION_TEMPERATURE: float = Field(default=0.7)
    CONVERSATION_WINDOW_TURNS: int = Field(
        default=5, description="Recent conversation turns passed to the final synthesis"
    )

    # Log intent enrichment
    ENRICHMENT_MODEL: str = Field(default="gpt-4o-mini", description="Model for log intent enrichment")
    ENRICHMENT_TEMPERATURE: float = Field(default=0.2)

    # Historical retrieval
    HISTORY_TOP_K: int = Field(default=5, description="Similar records fetched per log category")

    # Time handling
    USER_TIMEZONE: str = Field(default="UTC", description="IANA timezone used for 'today' and time of day")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
