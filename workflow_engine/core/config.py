"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="WORKFLOW_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "Workflow Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["*"]

    # Persistence
    database_url: str | None = None

    # Queue settings
    queue_workers: int = 4

    # Node execution settings
    http_timeout_ms: int = 30000
    http_retry_backoff_ms: int = 1000
    code_timeout_seconds: float = 5.0
    code_memory_limit_mb: int = 256
    max_delay_seconds: float = 3600

    # Scheduler settings
    scheduler_timezone: str = "UTC"

    # File settings
    upload_dir: str = "./uploads"
    file_base_dir: str | None = None

    # SMTP defaults (node config wins)
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None

    # AI/LLM settings
    default_ai_provider: str = "openai"
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    groq_api_key: str | None = None
    ollama_url: str = "http://localhost:11434"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
