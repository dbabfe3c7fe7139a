"""Error types accumulated by the request chain.

Every failure in a chain is recorded as a ``ChainError`` in the client's
error list instead of being raised to the caller. The hierarchy lets callers
filter accumulated errors with ``isinstance`` or by ``error_class``.
"""

from enum import Enum


class ErrorClass(str, Enum):
    """Classification of chain errors for metrics and reporting.

    - INVALID_URL: URL could not be parsed or normalized
    - INVALID_HOST: URL has no host after normalization
    - INVALID_REDIRECT_LOCATION: 3xx response without a Location header
    - TOO_MANY_REDIRECTS: Redirect hop bound exceeded
    - HTTP_STATUS: Redirect chain ended in a 4xx/5xx status
    - NETWORK_TIMEOUT: Round trip timed out
    - CONNECTION_ERROR: Could not establish a connection
    - TRANSPORT: Any other transport failure
    - DECOMPRESSION: gzip body could not be decoded
    - DECODE: JSON/XML decoding failed
    - NO_RESPONSE: Result requested but no response exists
    - CANCELLED: Round trip abandoned through a RequestContext
    - REQUEST_BUILD: Request object could not be constructed
    - CONFIG: Transport setting rejected
    """

    INVALID_URL = "INVALID_URL"
    INVALID_HOST = "INVALID_HOST"
    INVALID_REDIRECT_LOCATION = "INVALID_REDIRECT_LOCATION"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    HTTP_STATUS = "HTTP_STATUS"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TRANSPORT = "TRANSPORT"
    DECOMPRESSION = "DECOMPRESSION"
    DECODE = "DECODE"
    NO_RESPONSE = "NO_RESPONSE"
    CANCELLED = "CANCELLED"
    REQUEST_BUILD = "REQUEST_BUILD"
    CONFIG = "CONFIG"


class ChainError(Exception):
    """Base exception for all errors recorded by a request chain."""

    error_class: ErrorClass = ErrorClass.TRANSPORT
    default_message = "Request chain error"

    def __init__(self, message: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable message, defaults to the class message.
        """
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        """Get the error message."""
        return str(self)


class InvalidURLError(ChainError):
    """Raised when a URL cannot be parsed or serializes to nothing."""

    error_class = ErrorClass.INVALID_URL
    default_message = "Invalid URL"


class InvalidHostError(ChainError):
    """Raised when a URL has an empty host after normalization."""

    error_class = ErrorClass.INVALID_HOST
    default_message = "Invalid Host Request"


class InvalidRedirectLocationError(ChainError):
    """Raised when a redirect response carries no Location header."""

    error_class = ErrorClass.INVALID_REDIRECT_LOCATION
    default_message = "Invalid Redirect Location"


class TooManyRedirectsError(ChainError):
    """Raised when a redirect chain exceeds the configured hop bound."""

    error_class = ErrorClass.TOO_MANY_REDIRECTS
    default_message = "Too many Redirect"

    def __init__(self, max_redirects: int) -> None:
        """Initialize the error with the exceeded bound.

        Args:
            max_redirects: The configured hop bound.
        """
        self.max_redirects = max_redirects
        super().__init__(f"{self.default_message} (limit {max_redirects})")


class HTTPStatusError(ChainError):
    """Raised when a redirect hop ends in a 4xx or 5xx status.

    The message is the standard reason phrase for the status.
    """

    error_class = ErrorClass.HTTP_STATUS

    def __init__(self, status_code: int, reason: str) -> None:
        """Initialize the error.

        Args:
            status_code: HTTP status code of the final hop.
            reason: Reason phrase for the status.
        """
        self.status_code = status_code
        super().__init__(reason or f"HTTP {status_code}")


class TransportError(ChainError):
    """Wraps a failure raised by the underlying httpx transport."""

    error_class = ErrorClass.TRANSPORT

    def __init__(
        self,
        message: str,
        error_class: ErrorClass = ErrorClass.TRANSPORT,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable message.
            error_class: Classification of the transport failure.
            cause: Original exception.
        """
        self.error_class = error_class
        self.cause = cause
        super().__init__(message)


class DecompressionError(ChainError):
    """Raised when a gzip response body cannot be decoded."""

    error_class = ErrorClass.DECOMPRESSION
    default_message = "gzip: invalid header"


class DecodeError(ChainError):
    """Raised when a response body cannot be decoded as JSON or XML."""

    error_class = ErrorClass.DECODE
    default_message = "Response body could not be decoded"


class NoResponseError(ChainError):
    """Raised when a result is requested but no response is available."""

    error_class = ErrorClass.NO_RESPONSE
    default_message = "No response available"


class CancelledError(ChainError):
    """Raised when a round trip is abandoned through its RequestContext."""

    error_class = ErrorClass.CANCELLED
    default_message = "Request cancelled"


class RequestBuildError(ChainError):
    """Raised when the request object cannot be constructed."""

    error_class = ErrorClass.REQUEST_BUILD
    default_message = "Request could not be built"


class ConfigError(ChainError):
    """Raised when a transport setting is rejected."""

    error_class = ErrorClass.CONFIG
    default_message = "Invalid client configuration"
