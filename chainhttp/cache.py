"""In-memory response cache keyed by request identity.

Entries are buffered response snapshots. Writes arrive from background
snapshot tasks while callers may already be issuing the next request, so
every operation takes the cache lock.
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field


logger = structlog.get_logger()

# Headers that describe the wire encoding rather than the stored body
_TRANSFER_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


class CacheEntry(BaseModel):
    """Buffered snapshot of a completed response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    url: str = Field(min_length=1, description="Final URL of the response")
    headers: tuple[tuple[str, str], ...] = Field(
        default=(), description="Response header pairs, in order"
    )
    body: bytes = Field(default=b"", description="Decoded response body")
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def capture(cls, response: httpx.Response, body: bytes) -> "CacheEntry":
        """Build an entry from a response and its already decoded body.

        Args:
            response: Completed response.
            body: Decoded body bytes (independent of the caller's stream).

        Returns:
            New cache entry.
        """
        headers = tuple(
            (key, value)
            for key, value in response.headers.multi_items()
            if key.lower() not in _TRANSFER_HEADERS
        )
        return cls(
            status_code=response.status_code,
            url=str(response.request.url),
            headers=headers,
            body=body,
        )

    def to_response(self, request: httpx.Request) -> httpx.Response:
        """Materialize a fresh response object for a cache hit.

        Args:
            request: Request the response answers.

        Returns:
            Response with the cached status, headers and body.
        """
        return httpx.Response(
            self.status_code,
            headers=list(self.headers),
            content=self.body,
            request=request,
        )

    @property
    def body_size(self) -> int:
        """Get the size of the cached body in bytes."""
        return len(self.body)


class CacheStore(Protocol):
    """Protocol for response cache storage.

    Allows swapping the in-memory cache for another backend in tests.
    """

    def get(self, identity: str) -> CacheEntry | None:
        """Look up an entry by request identity."""
        ...

    def set(self, identity: str, entry: CacheEntry) -> None:
        """Store an entry under a request identity."""
        ...

    def clear(self) -> None:
        """Remove all entries."""
        ...


def request_identity(request: httpx.Request, key_headers: Iterable[str] = ()) -> str:
    """Derive the cache key for a request.

    The identity is the method and full URL, optionally followed by the
    values of selected request headers.

    Args:
        request: Finalized request.
        key_headers: Header names whose values take part in the key.

    Returns:
        Cache key string.
    """
    parts = [request.method.upper(), str(request.url)]
    for name in key_headers:
        values = request.headers.get_list(name)
        parts.append(f"{name.lower()}={','.join(values)}")
    return " ".join(parts)


class ResponseCache:
    """Thread-safe response cache.

    Entries live until ``clear()`` is called. Two optional extensions bound
    growth:
    - max_entries: least recently used entries are evicted beyond this size
    - ttl_seconds: entries older than this are dropped on lookup
    """

    def __init__(
        self,
        max_entries: int | None = None,
        ttl_seconds: float | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            max_entries: Maximum number of entries, unbounded if None.
            ttl_seconds: Entry lifetime in seconds, unlimited if None.
        """
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._entries: OrderedDict[str, tuple[float, CacheEntry]] = OrderedDict()
        self._lock = threading.Lock()
        self._log = logger.bind(component="cache")

    def get(self, identity: str) -> CacheEntry | None:
        """Look up an entry.

        Args:
            identity: Request identity.

        Returns:
            Cached entry, or None on a miss or expired entry.
        """
        with self._lock:
            item = self._entries.get(identity)
            if item is None:
                return None
            stored_at, entry = item
            if self._ttl_seconds is not None and (
                time.monotonic() - stored_at > self._ttl_seconds
            ):
                del self._entries[identity]
                self._log.debug("cache_expired", identity=identity)
                return None
            self._entries.move_to_end(identity)
            return entry

    def set(self, identity: str, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous one.

        Args:
            identity: Request identity.
            entry: Snapshot to store.
        """
        with self._lock:
            self._entries[identity] = (time.monotonic(), entry)
            self._entries.move_to_end(identity)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self._log.debug("cache_evicted", identity=evicted)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries
