from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional

class Settings(BaseSettings):
    app_name: str = "Sage Codex"
    # Default to a local postgres database if not set in env
    database_url: str = "postgresql+asyncpg://localhost/sage"

    # Model configuration - can be overridden via environment variables
    model_sage: str = "gemini-2.5-flash"  # The Sage conversational model
    google_api_key: Optional[str] = None  # Falls back to GOOGLE_API_KEY in the SDK

    # Max output tokens for a single Sage response
    sage_max_output_tokens: int = 4096

    # Upper bound on LLM <-> tool round trips inside one conversational turn
    max_tool_rounds: int = 8

    # Retry settings for transient Gemini errors (429 / 5xx)
    llm_max_retries: int = 3
    llm_retry_base_delay: int = 2  # seconds, used with exponential backoff

    # Number of stored chat messages replayed into each turn
    history_message_limit: int = 50

    # Best-effort state writes give up after this many seconds
    persistence_timeout_seconds: float = 10.0

    # Character cap on the adventure state digest appended to the system prompt
    state_digest_max_characters: int = 12000

    # Logging
    log_file: str = "server.log"
    log_level: str = "INFO"

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    @property
    def database_url_sync(self) -> str:
        """Convert async DB URL to sync for alembic."""
        return self.database_url.replace(
            "postgresql+asyncpg://", "postgresql+psycopg2://"
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache
def get_settings():
    return Settings()
