"""Request builder state and finalization."""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import IO

import httpx

from chainhttp.constants import DEFAULT_CHUNK_SIZE
from chainhttp.errors import RequestBuildError
from chainhttp.validator import validate_url


RequestBody = bytes | str | IO[bytes] | Iterable[bytes]


class Method:
    """Standard HTTP method tokens. Any other token is sent verbatim."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"


@dataclass(frozen=True)
class BasicAuth:
    """Basic-auth credential pair injected at finalize time."""

    user: str
    password: str = field(repr=False)


def canonical_header_key(key: str) -> str:
    """Canonicalize a header name, e.g. ``content-type`` -> ``Content-Type``."""
    return "-".join(part.capitalize() for part in key.strip().split("-"))


def _as_values(values: str | Iterable[str]) -> list[str]:
    if isinstance(values, str):
        return [values]
    return list(values)


class HeaderMap:
    """Case-insensitive header multimap preserving value order."""

    def __init__(self, initial: Mapping[str, str | Iterable[str]] | None = None) -> None:
        self._items: dict[str, list[str]] = {}
        if initial:
            for key, values in initial.items():
                self.add(key, values)

    def set(self, key: str, values: str | Iterable[str]) -> None:
        """Replace all values of a header."""
        self._items[canonical_header_key(key)] = _as_values(values)

    def add(self, key: str, values: str | Iterable[str]) -> None:
        """Append values to a header."""
        self._items.setdefault(canonical_header_key(key), []).extend(_as_values(values))

    def remove(self, key: str) -> None:
        """Drop a header if present."""
        self._items.pop(canonical_header_key(key), None)

    def get_list(self, key: str) -> list[str]:
        """Get all values of a header."""
        return list(self._items.get(canonical_header_key(key), []))

    def get(self, key: str) -> str | None:
        """Get the first value of a header."""
        values = self._items.get(canonical_header_key(key))
        return values[0] if values else None

    def multi_items(self) -> list[tuple[str, str]]:
        """Flatten into ordered (key, value) pairs."""
        return [(key, value) for key, values in self._items.items() for value in values]

    def copy(self) -> "HeaderMap":
        clone = HeaderMap()
        clone._items = {key: list(values) for key, values in self._items.items()}
        return clone

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and canonical_header_key(key) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


class RequestDescriptor:
    """Mutable builder state for the next request.

    Every mutation bumps ``revision`` so the client can tell whether an
    existing exchange still answers the current configuration. The
    ``httpx.Request`` produced by ``finalize`` is a snapshot: later builder
    calls never touch it.
    """

    def __init__(self) -> None:
        self.method: str = Method.GET
        self.url: str = ""
        self.headers = HeaderMap()
        self.body: RequestBody | None = None
        self.basic: BasicAuth | None = None
        self.cookies: list[tuple[str, str]] = []
        self.revision = 0
        self.request: httpx.Request | None = None
        self.ready_revision: int | None = None

    def touch(self) -> None:
        """Record a configuration change."""
        self.revision += 1

    @property
    def is_ready(self) -> bool:
        """Check if a finalized request matches the current configuration."""
        return self.request is not None and self.ready_revision == self.revision

    def adopt(self, request: httpx.Request) -> None:
        """Use a prebuilt request as the finalized request."""
        self.touch()
        self.method = request.method
        self.url = str(request.url)
        self.request = request
        self.ready_revision = self.revision

    def finalize(self, session: httpx.Client) -> httpx.Request:
        """Build the request object for the current configuration.

        Validates the URL, attaches headers, queued cookies and basic auth,
        and marks the descriptor ready.

        Args:
            session: Session whose cookie jar and timeout apply.

        Returns:
            Finalized request.

        Raises:
            InvalidURLError: If the URL cannot be parsed.
            InvalidHostError: If the URL has no host.
            RequestBuildError: If httpx rejects the request.
        """
        url = validate_url(self.url)
        self.url = str(url)

        headers = self.headers.copy()
        if self.cookies:
            pairs = "; ".join(f"{name}={value}" for name, value in self.cookies)
            existing = headers.get("Cookie")
            headers.set("Cookie", f"{existing}; {pairs}" if existing else pairs)

        content: bytes | str | Iterable[bytes] | None
        if self.body is None or isinstance(self.body, bytes | str):
            content = self.body
        elif hasattr(self.body, "read"):
            content = _iter_reader(self.body)  # type: ignore[arg-type]
        else:
            content = self.body

        try:
            request = session.build_request(
                self.method,
                url,
                headers=headers.multi_items(),
                content=content,
            )
        except (httpx.HTTPError, TypeError, ValueError) as e:
            raise RequestBuildError(f"Request could not be built: {e}") from e

        if self.basic is not None:
            auth_flow = httpx.BasicAuth(self.basic.user, self.basic.password).auth_flow(
                request
            )
            request = next(auth_flow)

        self.request = request
        self.ready_revision = self.revision
        return request


def _iter_reader(reader: IO[bytes]) -> Iterator[bytes]:
    """Stream a binary reader in chunks."""
    while True:
        chunk = reader.read(DEFAULT_CHUNK_SIZE)
        if not chunk:
            return
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        yield chunk
