"""Observability module for logging."""

from chainhttp.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
    parse_level,
)


__all__ = [
    "bind_request_context",
    "clear_request_context",
    "configure_logging",
    "get_logger",
    "parse_level",
]
