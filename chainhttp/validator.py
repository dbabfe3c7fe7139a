"""URL validation and normalization for outgoing requests."""

import re
from urllib.parse import urlsplit, urlunsplit

import httpx

from chainhttp.errors import InvalidHostError, InvalidURLError


DEFAULT_SCHEME = "http"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
# A scheme followed by something other than a port, e.g. "mailto:a@b.com"
_OPAQUE_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:(?!\d)")


def validate_url(raw: str) -> httpx.URL:
    """Validate and normalize a URL string.

    Normalization rules:
    - An empty scheme defaults to ``http``; ``example.com/path`` is read as
      ``http://example.com/path``
    - A scheme without ``//`` (``mailto:a@b.com``) has no host; a bare
      ``host:port`` is still read as a host
    - The host must be non-empty after normalization
    - The normalized form must serialize to a non-empty string

    The function is pure and idempotent on its own output.

    Args:
        raw: URL string from the caller.

    Returns:
        Normalized absolute URL.

    Raises:
        InvalidURLError: If the string cannot be parsed as a URI.
        InvalidHostError: If the normalized URL has no host.
    """
    if _CONTROL_CHARS.search(raw) or _BAD_PERCENT_ESCAPE.search(raw):
        raise InvalidURLError(f"Invalid URL: {raw!r}")

    candidate = raw.strip()
    if "://" not in candidate:
        if _OPAQUE_SCHEME.match(candidate):
            raise InvalidHostError()
        if candidate.startswith("//"):
            candidate = f"{DEFAULT_SCHEME}:{candidate}"
        else:
            candidate = f"{DEFAULT_SCHEME}://{candidate}"

    try:
        parts = urlsplit(candidate)
        # Accessing port validates it
        parts.port  # noqa: B018
    except ValueError as e:
        raise InvalidURLError(f"Invalid URL: {e}") from e

    scheme = parts.scheme or DEFAULT_SCHEME
    if not parts.hostname:
        raise InvalidHostError()

    normalized = urlunsplit(
        (scheme, parts.netloc, parts.path, parts.query, parts.fragment)
    )
    if not normalized:
        raise InvalidURLError()

    try:
        url = httpx.URL(normalized)
    except httpx.InvalidURL as e:
        raise InvalidURLError(f"Invalid URL: {e}") from e

    if not str(url):
        raise InvalidURLError()
    return url
