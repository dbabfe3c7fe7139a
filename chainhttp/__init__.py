"""Fluent HTTP request chains over httpx.

This package provides a chainable request builder with:
- URL validation and normalization
- Manual redirect following over the raw transport
- gzip response decoding
- Response caching with background snapshot stores
- Error accumulation instead of exceptions
"""

from chainhttp.body import ResponseBody
from chainhttp.cache import CacheEntry, ResponseCache, request_identity
from chainhttp.client import (
    Client,
    delete,
    get,
    get_http_client,
    head,
    new_client,
    patch,
    post,
    put,
)
from chainhttp.config import ClientConfig, TransportConfig
from chainhttp.context import RequestContext
from chainhttp.errors import (
    CancelledError,
    ChainError,
    ConfigError,
    DecodeError,
    DecompressionError,
    ErrorClass,
    HTTPStatusError,
    InvalidHostError,
    InvalidRedirectLocationError,
    InvalidURLError,
    NoResponseError,
    RequestBuildError,
    TooManyRedirectsError,
    TransportError,
)
from chainhttp.executor import ExecutionResult, RedirectPolicy
from chainhttp.metrics import ClientMetrics
from chainhttp.settings import ClientSettings
from chainhttp.state_machine import ExchangeState
from chainhttp.validator import validate_url


__all__ = [
    # Client
    "Client",
    "new_client",
    "get_http_client",
    "get",
    "post",
    "put",
    "patch",
    "delete",
    "head",
    # Execution
    "ExecutionResult",
    "ExchangeState",
    "RedirectPolicy",
    "RequestContext",
    "ResponseBody",
    # Cache
    "CacheEntry",
    "ResponseCache",
    "request_identity",
    # Config
    "ClientConfig",
    "ClientSettings",
    "TransportConfig",
    # Validation
    "validate_url",
    # Errors
    "ErrorClass",
    "ChainError",
    "InvalidURLError",
    "InvalidHostError",
    "InvalidRedirectLocationError",
    "TooManyRedirectsError",
    "HTTPStatusError",
    "TransportError",
    "DecompressionError",
    "DecodeError",
    "NoResponseError",
    "CancelledError",
    "RequestBuildError",
    "ConfigError",
    # Metrics
    "ClientMetrics",
]
