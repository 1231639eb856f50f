"""
Application configuration.
All connection settings and tuning knobs loaded from environment variables.
"""
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Durable store (PostgreSQL + pgvector)
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/agents"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_TIMEOUT_SECONDS: float = 10.0

    # Ephemeral cache (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 5.0
    REDIS_MAX_RETRIES: int = 3

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or console

    # Working memory
    WORKING_MEMORY_KEY_PREFIX: str = "stm"
    WORKING_MEMORY_TTL_SECONDS: int = 7200
    WORKING_MEMORY_MAX_TTL_SECONDS: int = 86400

    # Long-term memory
    # OpenAI text-embedding-3-small produces 1536-dimensional vectors
    EMBEDDING_DIMENSIONS: Optional[int] = 1536
    MEMORY_LIST_DEFAULT_LIMIT: int = 20
    MEMORY_LIST_MAX_LIMIT: int = 100

    # Recall
    RECALL_DEFAULT_LIMIT: int = 10
    RECALL_DEFAULT_THRESHOLD: float = 0.7
    # Disable when the pgvector operator is not deployed
    RECALL_NATIVE_SEARCH_ENABLED: bool = True

    # Context window assembly
    CONTEXT_TOKEN_BUDGET: int = 8192
    CONTEXT_MEMORY_BUDGET_RATIO: float = 0.15
    CONTEXT_RECALL_LIMIT: int = 5
    CONTEXT_RECALL_THRESHOLD: float = 0.7

    # Access tracking
    ACCESS_TRACKER_QUEUE_SIZE: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
