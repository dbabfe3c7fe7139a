"""Environment settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chainhttp.constants import (
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
    DEFAULT_REDIRECT_COUNT,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)


class ClientSettings(BaseSettings):
    """Client defaults read from ``CHAINHTTP_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CHAINHTTP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0.0)
    verify_tls: bool = True
    ca_bundle: str | None = None
    proxy: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    max_keepalive_connections: int = DEFAULT_MAX_KEEPALIVE_CONNECTIONS
    default_redirect_count: int = DEFAULT_REDIRECT_COUNT
    cache_max_entries: int | None = None
    cache_ttl_seconds: float | None = None
    cache_key_headers: list[str] = Field(default_factory=list)
    log_level: str = "WARNING"
    json_logs: bool = True


def get_settings() -> ClientSettings:
    """Get a settings instance."""
    return ClientSettings()
