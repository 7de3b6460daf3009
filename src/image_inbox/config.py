"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

_DEVELOPMENT_ENVIRONMENTS = {"local", "development", "dev"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    supabase_url: str
    supabase_service_key: str
    images_table: str = "images"
    cache_ttl_seconds: float = 300
    db_connect_timeout_seconds: float = 10
    db_query_timeout_seconds: float = 45
    auth_dir: str = "auth"
    notify_chat_id: int | None = None
    poll_timeout_seconds: int = 30
    messaging_enabled: bool = True
    reconnect_max_attempts: int | None = None
    reconnect_base_delay_seconds: float = 0.0
    reconnect_max_delay_seconds: float = 60.0
    cors_origins: str = "*"
    trusted_proxies: str = ""
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 900
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def is_development(environment: str) -> bool:
    """Return true when error details may be shown to clients."""
    return environment.strip().lower() in _DEVELOPMENT_ENVIRONMENTS


def parse_trusted_proxies(raw: str | None) -> frozenset[str]:
    """Parse peer addresses whose X-Forwarded-For header is honoured."""
    if raw is None:
        return frozenset()
    return frozenset(chunk.strip() for chunk in raw.split(",") if chunk.strip())


def parse_cors_origins(raw: str | None) -> list[str]:
    """Parse a comma separated list of allowed CORS origins."""
    if raw is None:
        return []
    cleaned = raw.strip()
    if cleaned == "*":
        return ["*"]
    return [chunk.strip() for chunk in cleaned.split(",") if chunk.strip()]
