from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Package generation
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 8192
    generation_timeout_seconds: float = 90.0

    # Execution guardrails
    max_follow_up_depth: int = 2
    default_agent_id: str = "alexander"
    default_event_duration_minutes: int = 60

    # Business defaults
    default_currency: str = "ZAR"
    default_country: str = "ZA"
    quote_number_prefix: str = "Q-"
    quote_number_width: int = 5

    # Shared-context feedback files read back by agents
    shared_context_dir: str = "~/.openclaw/workspace/shared-context"

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
