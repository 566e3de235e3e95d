"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- API keys and embedding model names
- Data stores (PostgreSQL, Redis) and the query embedding cache
- Retry/backoff knobs for the embedding provider
- Backfill batch sizes and scan windows
- Hybrid scoring weights
- Optional tracing and log level

A warning is logged if OPENAI_API_KEY is not set when not running in Docker.
"""
import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Required
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_BASE_URL: str = ""
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # Models
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"  # 1536 dims
    EMBEDDING_MAX_TEXT_LENGTH: int = 8000

    # Data stores
    DATABASE_URL: str = "postgresql+psycopg2://kb_user:kb_pass@db:5432/kb_db"
    REDIS_URL: str = "redis://redis:6379/0"
    EMBEDDING_CACHE_ENABLED: bool = False
    EMBEDDING_CACHE_TTL_SECONDS: int = 3600

    # Retry policy (milliseconds, exponential backoff)
    RETRY_MAX_RETRIES: int = 3
    RETRY_INITIAL_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 10000
    RETRY_BACKOFF_MULTIPLIER: float = 2.0

    # Backfill
    BACKFILL_BATCH_SIZE: int = 50
    BACKFILL_SCAN_LIMIT: int = 1000
    CHUNK_BACKFILL_BATCH_SIZE: int = 10

    # Hybrid scoring
    HYBRID_SEMANTIC_WEIGHT: float = 0.7
    HYBRID_KEYWORD_WEIGHT: float = 0.3

    # Observability
    OTEL_CONSOLE_EXPORT: bool = False
    LOG_LEVEL: str = "INFO"

    # Derived
    @property
    def EMBEDDING_DIM(self) -> int:
        """Embedding dimension for the configured embedding model.

        Returns:
            int: The vector dimension inferred from OPENAI_EMBEDDING_MODEL.
        """
        model = self.OPENAI_EMBEDDING_MODEL.lower()
        if "text-embedding-3-small" in model:
            return 1536
        if "text-embedding-3-large" in model:
            return 3072
        # Fallback
        return 1536

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

# Safety check for local dev (inside API container this must be set)
if os.environ.get("RUNNING_IN_DOCKER", "0") == "0":
    if not settings.OPENAI_API_KEY:
        # Avoid raising to allow local scaffolding before setting .env
        logger.warning("OPENAI_API_KEY not set. Set it in .env before running backfills or /embeddings.")
