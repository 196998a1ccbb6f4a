"""Configuration management using Pydantic settings."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The record store lives under ``database_url`` (a local directory for the
    JSON-backed store). Credentials are optional at import time so the API can
    start in a degraded mode; the LLM client refuses to run without a key.
    """

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # API Keys
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "mistralai/mixtral-8x7b-instruct:v0.1"
    monetization_model: str = "google/gemini-2.0-flash-001"
    app_title: str = "NexoraOS"

    # Database
    database_url: str = "data"
    database_service_key: str | None = None

    # Auth / payments
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    paywall_enabled: bool = True
    whop_webhook_secret: str | None = None
    whop_annual_plan_id: str = "plan_xNlBWUTysLURE"

    # Development settings
    debug: bool = False
    log_level: str = "INFO"

    # Retry settings
    llm_max_retries: int = 3
    llm_backoff_seconds: float = 1.2  # multiplied by the attempt number
    llm_temperature: float = 0.65
    llm_timeout: int = 120

    # Pipeline settings
    poll_interval_seconds: float = 4.0
    error_message_max_chars: int = 500
    default_tone: str = "clear, authoritative, practical"
    default_length: str = "medium"

    # Langfuse observability settings
    langfuse_enabled: bool = False
    langfuse_public_key: str | None = None
    langfuse_secret_key: str | None = None
    langfuse_host: str = "https://cloud.langfuse.com"


def get_data_paths(base: str | Path) -> dict[str, Path]:
    """Get standardized storage paths under a data directory."""
    base_dir = Path(base)

    return {
        "base": base_dir,
        "tables": base_dir / "tables",
        "logs": base_dir / "logs",
        "exports": base_dir / "exports",
    }


def ensure_directories(base: str | Path) -> None:
    """Create all necessary directories for the data store."""
    for path in get_data_paths(base).values():
        path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()


def get_config() -> Settings:
    """Get the global configuration instance."""
    return settings
