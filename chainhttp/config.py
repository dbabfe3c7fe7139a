"""Configuration models for the request chain."""

import ssl
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chainhttp.constants import (
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
    DEFAULT_REDIRECT_COUNT,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from chainhttp.settings import ClientSettings


class TransportConfig(BaseModel):
    """Settings passed through to the httpx transport and session.

    A change to any of these requires a new session; request-level
    configuration never does.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    timeout_seconds: Annotated[float, Field(gt=0.0, le=3600.0)] = DEFAULT_TIMEOUT_SECONDS
    verify: bool | str | ssl.SSLContext = Field(
        default=True,
        description="TLS verification: bool, CA bundle path or SSLContext",
    )
    proxy: str | None = Field(default=None, description="Proxy URL")
    max_connections: Annotated[int, Field(ge=1, le=10000)] = DEFAULT_MAX_CONNECTIONS
    max_keepalive_connections: Annotated[int, Field(ge=0, le=10000)] = (
        DEFAULT_MAX_KEEPALIVE_CONNECTIONS
    )
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = DEFAULT_USER_AGENT


class ClientConfig(BaseModel):
    """Configuration for a request chain client.

    Holds transport settings plus the defaults for redirect following and
    response caching.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    transport: TransportConfig = Field(default_factory=TransportConfig)
    default_redirect_count: Annotated[int, Field(ge=1, le=100)] = DEFAULT_REDIRECT_COUNT
    cache_max_entries: Annotated[int, Field(ge=1)] | None = None
    cache_ttl_seconds: Annotated[float, Field(gt=0.0)] | None = None
    cache_key_headers: tuple[str, ...] = Field(
        default=(), description="Request headers that take part in the cache key"
    )

    @field_validator("cache_key_headers")
    @classmethod
    def normalize_key_headers(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Lowercase and deduplicate cache key header names."""
        seen: list[str] = []
        for name in v:
            lowered = name.strip().lower()
            if not lowered:
                msg = "Cache key header names must not be empty"
                raise ValueError(msg)
            if lowered not in seen:
                seen.append(lowered)
        return tuple(seen)

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> "ClientConfig":
        """Build a configuration from environment settings.

        Args:
            settings: Loaded settings, read from the environment if None.

        Returns:
            Client configuration.
        """
        settings = settings or ClientSettings()
        verify: bool | str = settings.verify_tls
        if settings.ca_bundle:
            verify = settings.ca_bundle
        return cls(
            transport=TransportConfig(
                timeout_seconds=settings.timeout_seconds,
                verify=verify,
                proxy=settings.proxy,
                max_connections=settings.max_connections,
                max_keepalive_connections=settings.max_keepalive_connections,
                user_agent=settings.user_agent,
            ),
            default_redirect_count=settings.default_redirect_count,
            cache_max_entries=settings.cache_max_entries,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            cache_key_headers=tuple(settings.cache_key_headers),
        )

    def with_transport(self, **changes: object) -> "ClientConfig":
        """Return a copy with updated transport settings.

        Raises:
            pydantic.ValidationError: If a changed value is out of bounds.
        """
        transport = TransportConfig(**{**dict(self.transport), **changes})
        return self.model_copy(update={"transport": transport})
