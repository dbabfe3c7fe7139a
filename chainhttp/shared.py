"""Transport sessions and the process-wide shared session.

A ``Session`` pairs an ``httpx.Client`` with the raw transport it sends
through, so redirect hops can bypass the client wrapping. The shared
session is built once and never reconfigured afterwards; clients that need
different transport settings build a private session instead.
"""

import threading
from http.cookiejar import CookieJar

import httpx
import structlog

from chainhttp.config import ClientConfig
from chainhttp.redact import redact_url_credentials


logger = structlog.get_logger()


class Session:
    """An httpx client together with its raw transport."""

    def __init__(
        self,
        config: ClientConfig,
        cookie_jar: CookieJar | None = None,
        transport: httpx.BaseTransport | None = None,
        shared: bool = False,
    ) -> None:
        """Build the session.

        Args:
            config: Client configuration (transport section applies).
            cookie_jar: Jar shared with the httpx client, new if None.
            transport: Prebuilt transport, e.g. ``httpx.MockTransport``.
            shared: Whether the session is the process-wide one.
        """
        settings = config.transport
        self.cookie_jar = cookie_jar if cookie_jar is not None else CookieJar()
        self.transport = transport or httpx.HTTPTransport(
            verify=settings.verify,
            proxy=settings.proxy,
            limits=httpx.Limits(
                max_connections=settings.max_connections,
                max_keepalive_connections=settings.max_keepalive_connections,
            ),
        )
        self.client = httpx.Client(
            transport=self.transport,
            cookies=self.cookie_jar,
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers={"User-Agent": settings.user_agent},
            follow_redirects=False,
        )
        self.shared = shared
        logger.debug(
            "session_created",
            component="session",
            shared=shared,
            proxy=redact_url_credentials(settings.proxy) if settings.proxy else None,
            timeout_seconds=settings.timeout_seconds,
        )

    def close(self) -> None:
        """Close the httpx client and its connection pool."""
        self.client.close()


_shared_session: Session | None = None
_shared_lock = threading.Lock()


def get_shared_session() -> Session:
    """Get the process-wide session, building it exactly once."""
    global _shared_session  # noqa: PLW0603
    if _shared_session is None:
        with _shared_lock:
            if _shared_session is None:
                _shared_session = Session(ClientConfig.from_settings(), shared=True)
    return _shared_session


def reset_shared_session() -> None:
    """Close and forget the shared session (primarily for testing)."""
    global _shared_session  # noqa: PLW0603
    with _shared_lock:
        if _shared_session is not None:
            _shared_session.close()
        _shared_session = None
