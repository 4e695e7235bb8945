"""Engine configuration using Pydantic Settings."""
from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Application
    app_name: str = "FlowChord"
    environment: str = "development"

    # Persistence
    store_backend: str = "memory"  # "memory" or "sql"
    database_url: str = "sqlite+aiosqlite:///./flowchord.db"
    db_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text", "json" or "rich"

    # Completion provider
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    default_llm_model: str = "gpt-4o-mini"
    default_system_prompt: str = "You are a helpful AI assistant."
    llm_temperature: float = 0.7
    llm_timeout: float = 120.0

    # Embedding provider
    embedding_provider: str = "openai"  # "openai" or "hash" (fallback)
    embedding_model: str = "text-embedding-3-small"

    # Retrieval defaults for LLM agents
    rag_limit: int = 5
    rag_min_score: float = 0.5

    # Agent job completion budget
    job_poll_interval: float = 1.0
    job_poll_attempts: int = 60

    # Workflow nodes
    default_delay_ms: int = 1000

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_resync_interval: float = 60.0
    scheduler_misfire_grace_time: int = 60

    # Webhooks
    webhook_base_url: str = "http://localhost:5000"
    webhook_require_signature: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url

    @property
    def has_llm_key(self) -> bool:
        return bool(self.openai_api_key)

    model_config = {"env_prefix": "", "case_sensitive": False}


@lru_cache
def get_settings() -> Settings:
    """Get cached engine settings."""
    return Settings()
