"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore", # Allow extra env vars without failing
    )

    # App
    app_name: str = "RCFA Tracker"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    # Secret key MUST be provided via environment (e.g. SECRET_KEY in .env)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Seeded admin account (first startup only)
    admin_email: str = "admin@example.com"
    admin_password: str = "CHANGE_ME"

    # API
    api_prefix: str = "/api/v1"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./rcfa.db"
    db_ssl_mode: str = "disable" # "require" for production
    database_pool_size: int = 5
    database_max_overflow: int = 10
    # Seconds a SQLite writer waits for the database lock before failing
    sqlite_busy_timeout: float = 15.0

    # Analysis LLM
    llm_provider: str = "gemini"  # gemini | on-prem
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    onprem_llm_url: str = "http://localhost:11434"
    onprem_llm_model: str = "llama3"
    llm_timeout_seconds: float = 120.0

    # Prompt shaping
    analysis_field_max_chars: int = 1000
    analysis_notes_max_chars: int = 2000
    materiality_reasoning_max_chars: int = 500


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
