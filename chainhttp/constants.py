"""HTTP constants for the request chain.

Centralizes status ranges and defaults shared by the builder, executor and cache.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_MULTIPLE_CHOICES = 300
HTTP_STATUS_REDIRECT_MAX = 400
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Redirect hop bound used by enable_redirect()
DEFAULT_REDIRECT_COUNT = 2

# Connection pool sizing passed through to httpx.Limits
DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 32

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "chainhttp/1.0"

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# Poll interval while waiting on a cancellable round trip (seconds)
CANCEL_POLL_INTERVAL_SECONDS = 0.05

# Background cache writer pool
CACHE_WRITER_MAX_WORKERS = 4

GZIP_MAGIC = b"\x1f\x8b"
