"""Fluent request chain client.

A ``Client`` accumulates request configuration through chained builder
calls, executes it with ``do()`` and exposes the result through decoders
and accessors. Failures never interrupt the chain: they are appended to the
client's error list, which callers inspect at the end.

One client is meant to be driven from one thread at a time. Execution and
transport reconfiguration are serialized on a per-client lock, and the
previous response is closed before a new call replaces it.
"""

import ssl
import threading
from collections.abc import Iterable, Mapping
from datetime import timedelta
from http.cookiejar import Cookie, CookieJar
from types import TracebackType
from typing import IO, Any

import httpx
import structlog
from pydantic import ValidationError

from chainhttp.body import ResponseBody
from chainhttp.cache import CacheStore, ResponseCache
from chainhttp.config import ClientConfig
from chainhttp.context import RequestContext
from chainhttp.decoders import JSONDestination, decode_json_into, decode_xml_into
from chainhttp.errors import ChainError, ConfigError, NoResponseError
from chainhttp.executor import (
    CacheWriter,
    ExecutionResult,
    Executor,
    RedirectPolicy,
    wrap_transport_error,
)
from chainhttp.metrics import ClientMetrics
from chainhttp.redact import redact_url_credentials
from chainhttp.request import BasicAuth, HeaderMap, Method, RequestDescriptor
from chainhttp.shared import Session, get_shared_session
from chainhttp.validator import validate_url


logger = structlog.get_logger()


class Client:
    """Chainable HTTP request builder and executor."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        session: Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration, read from the environment if None.
            transport: Transport for private sessions, e.g. httpx.MockTransport.
            session: Existing session to send through (not owned).
        """
        self._config = config or ClientConfig.from_settings()
        self._transport_override = transport
        self._session = session
        self._owns_session = False
        self._retired_sessions: list[Session] = []
        self._cookie_jar: CookieJar | None = None

        self._request = RequestDescriptor()
        self._redirect_enabled = False
        self._max_redirect = 0
        self._cache_enabled = False
        self._cache: CacheStore | None = None

        self._errors: list[ChainError] = []
        self._result: ExecutionResult | None = None
        self._result_revision: int | None = None
        self._result_open = False

        self._writer = CacheWriter()
        self._metrics = ClientMetrics.get_instance()
        self._lock = threading.RLock()
        self._log = logger.bind(component="client")

    # -- method and URL -------------------------------------------------

    def set_method(self, method: str) -> "Client":
        """Set the request method; any token is accepted and uppercased."""
        self._request.method = method.upper()
        self._request.touch()
        return self

    def set_url(self, url: str) -> "Client":
        """Set the request URL, validated at finalize."""
        self._request.url = url
        self._request.touch()
        return self

    def _with_method(self, method: str, url: str) -> "Client":
        self._request.method = method
        self._request.url = url
        self._request.touch()
        return self

    def get(self, url: str) -> "Client":
        """Start a GET request."""
        return self._with_method(Method.GET, url)

    def post(self, url: str) -> "Client":
        """Start a POST request."""
        return self._with_method(Method.POST, url)

    def put(self, url: str) -> "Client":
        """Start a PUT request."""
        return self._with_method(Method.PUT, url)

    def patch(self, url: str) -> "Client":
        """Start a PATCH request."""
        return self._with_method(Method.PATCH, url)

    def delete(self, url: str) -> "Client":
        """Start a DELETE request."""
        return self._with_method(Method.DELETE, url)

    def head(self, url: str) -> "Client":
        """Start a HEAD request."""
        return self._with_method(Method.HEAD, url)

    # -- headers and cookies --------------------------------------------

    def set_header(self, key: str, values: str | Iterable[str]) -> "Client":
        """Replace all values of a header."""
        self._request.headers.set(key, values)
        self._request.touch()
        return self

    def set_headers(self, headers: Mapping[str, str | Iterable[str]]) -> "Client":
        """Replace the whole header set."""
        self._request.headers = HeaderMap(headers)
        self._request.touch()
        return self

    def add_header(self, key: str, values: str | Iterable[str]) -> "Client":
        """Append values to a header."""
        self._request.headers.add(key, values)
        self._request.touch()
        return self

    def add_headers(self, headers: Mapping[str, str | Iterable[str]]) -> "Client":
        """Append values for several headers."""
        for key, values in headers.items():
            self._request.headers.add(key, values)
        self._request.touch()
        return self

    def set_content_type(self, content_type: str) -> "Client":
        """Set the Content-Type header."""
        return self.set_header("Content-Type", content_type)

    def set_user_agent(self, agent: str) -> "Client":
        """Set the User-Agent header."""
        return self.set_header("User-Agent", agent)

    def set_cookie_string(self, cookie: str) -> "Client":
        """Send a raw Cookie header."""
        return self.set_header("Cookie", cookie)

    def set_cookie(self, name: str, value: str) -> "Client":
        """Queue a cookie for the Cookie header."""
        self._request.cookies.append((name, value))
        self._request.touch()
        return self

    def set_cookies(self, cookies: Mapping[str, str] | Iterable[Cookie]) -> "Client":
        """Queue several cookies, from a mapping or cookiejar Cookie objects."""
        if isinstance(cookies, Mapping):
            pairs = [(name, value) for name, value in cookies.items()]
        else:
            pairs = [(cookie.name, cookie.value or "") for cookie in cookies]
        self._request.cookies.extend(pairs)
        self._request.touch()
        return self

    def set_cookie_jar(self, jar: CookieJar) -> "Client":
        """Use ``jar`` as the session cookie store."""
        with self._lock:
            self._cookie_jar = jar
            if self._session is not None and self._owns_session:
                self._session.client.cookies = jar  # type: ignore[assignment]
                self._session.cookie_jar = jar
            else:
                self._detach_session()
            self._request.touch()
        return self

    # -- body and auth --------------------------------------------------

    def set_body(self, body: IO[bytes] | Iterable[bytes]) -> "Client":
        """Send a stream as the body. The stream is consumed once."""
        self._request.body = body
        self._request.touch()
        return self

    def set_body_string(self, body: str) -> "Client":
        """Send a string as the body, encoded as UTF-8."""
        self._request.body = body
        self._request.touch()
        return self

    def set_body_bytes(self, body: bytes) -> "Client":
        """Send a byte string as the body."""
        self._request.body = bytes(body)
        self._request.touch()
        return self

    def set_basic_auth(self, user: str, password: str) -> "Client":
        """Store credentials, injected as a Basic Authorization header at finalize."""
        self._request.basic = BasicAuth(user, password)
        self._request.touch()
        return self

    def set_auth_token(self, token: str) -> "Client":
        """Send ``token`` verbatim as the Authorization header."""
        return self.set_header("Authorization", token)

    def set_request(self, request: httpx.Request) -> "Client":
        """Adopt a prebuilt request as the finalized request."""
        self._request.adopt(request)
        return self

    # -- redirects and cache --------------------------------------------

    def enable_redirect(self) -> "Client":
        """Follow redirects with the default hop bound."""
        self._redirect_enabled = True
        self._max_redirect = self._config.default_redirect_count
        return self

    def set_redirect_count(self, count: int) -> "Client":
        """Follow redirects with ``count`` as the hop bound."""
        self._redirect_enabled = True
        self._max_redirect = count
        return self

    def enable_cache(self, cache: CacheStore | None = None) -> "Client":
        """Serve identical requests from a response cache.

        Args:
            cache: Cache to use; an existing cache is kept, otherwise a new
                in-memory cache is created.
        """
        if cache is not None:
            self._cache = cache
        elif self._cache is None:
            self._cache = ResponseCache(
                max_entries=self._config.cache_max_entries,
                ttl_seconds=self._config.cache_ttl_seconds,
            )
        self._cache_enabled = True
        return self

    def reset_cache(self) -> "Client":
        """Remove every cached response."""
        self._writer.drain()
        if self._cache is not None:
            self._cache.clear()
        return self

    def flush_cache_writes(self, timeout: float | None = None) -> "Client":
        """Wait for background cache stores scheduled by this client."""
        self._writer.drain(timeout)
        return self

    @property
    def cache(self) -> CacheStore | None:
        """Get the response cache, None if caching was never enabled."""
        return self._cache

    # -- transport ------------------------------------------------------

    def set_timeout(self, timeout: float | timedelta) -> "Client":
        """Set the connect/read/write/pool timeout."""
        seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else timeout
        return self._reconfigure_transport(timeout_seconds=seconds)

    def set_proxy(self, uri: str) -> "Client":
        """Route requests through a proxy. Invalid URLs are recorded."""
        try:
            proxy = validate_url(uri)
        except ChainError as e:
            self._record(e)
            return self
        return self._reconfigure_transport(proxy=str(proxy))

    def set_tls_config(self, verify: ssl.SSLContext | str | bool) -> "Client":
        """Set TLS verification: an SSLContext, a CA bundle path or a bool."""
        return self._reconfigure_transport(verify=verify)

    def _reconfigure_transport(self, **changes: Any) -> "Client":
        with self._lock:
            try:
                self._config = self._config.with_transport(**changes)
            except ValidationError as e:
                self._record(ConfigError(f"Invalid client configuration: {e}"))
                return self
            self._detach_session()
            self._request.touch()
        return self

    def _detach_session(self) -> None:
        # The shared session is never reconfigured; owned ones stay open
        # while a response read through them is still unreleased
        if self._session is not None and self._owns_session:
            self._retired_sessions.append(self._session)
        self._session = None
        self._owns_session = False
        if not self._result_open:
            self._close_retired()

    def _close_retired(self) -> None:
        for session in self._retired_sessions:
            session.close()
        self._retired_sessions.clear()

    def _get_session(self) -> Session:
        if self._session is None:
            self._session = Session(
                self._config,
                cookie_jar=self._cookie_jar,
                transport=self._transport_override,
            )
            self._owns_session = True
            self._cookie_jar = self._session.cookie_jar
        return self._session

    @property
    def config(self) -> ClientConfig:
        """Get the current configuration."""
        return self._config

    def reset_client(self) -> "Client":
        """Close the current response and return a fresh client.

        The new client keeps this client's configuration but none of its
        request state, cache or errors. The session owned by this client
        is closed.
        """
        with self._lock:
            self._release_result()
            self._detach_session()
        return Client(self._config, transport=self._transport_override)

    # -- execution ------------------------------------------------------

    def do(self) -> "Client":
        """Finalize and execute the current request."""
        return self._execute(None)

    def do_with_context(self, context: RequestContext) -> "Client":
        """Finalize and execute the current request under a cancellation token."""
        return self._execute(context)

    def _execute(self, context: RequestContext | None) -> "Client":
        with self._lock:
            self._release_result()
            revision = self._request.revision
            request = self._finalize()
            self._result_revision = revision
            if request is None:
                self._result = None
                return self

            executor = Executor(self._get_session(), self._writer, self._metrics)
            result = executor.execute(
                request,
                RedirectPolicy(self._redirect_enabled, self._max_redirect),
                cache=self._cache if self._cache_enabled else None,
                key_headers=self._config.cache_key_headers,
                context=context,
            )
            self._errors.extend(result.errors)
            self._result = result
            self._result_open = True
        return self

    def _finalize(self) -> httpx.Request | None:
        if self._request.is_ready:
            return self._request.request
        try:
            return self._request.finalize(self._get_session().client)
        except ChainError as e:
            self._record(e)
            return None

    def _ensure_executed(self) -> None:
        if self._result_revision != self._request.revision:
            self.do()

    def _release_result(self) -> None:
        result = self._result
        if result is not None and self._result_open:
            try:
                if result.body is not None:
                    result.body.close()
                if result.response is not None:
                    result.response.close()
            except (httpx.HTTPError, httpx.StreamError) as e:
                self._record(wrap_transport_error(e))
        self._result_open = False
        self._close_retired()

    def _record(self, error: ChainError) -> None:
        self._errors.append(error)
        self._metrics.record_failure(error.error_class)
        self._log.debug(
            "error_recorded",
            error_class=error.error_class.value,
            error=str(error),
            url=redact_url_credentials(self._request.url),
        )

    # -- results --------------------------------------------------------

    def _read_all(self) -> bytes | None:
        result = self._result
        if result is None or result.body is None:
            self._record(NoResponseError())
            return None
        try:
            return result.body.readall()
        except ChainError as e:
            self._record(e)
        except (httpx.HTTPError, httpx.StreamError) as e:
            self._record(wrap_transport_error(e))
        return None

    def json(self, dest: JSONDestination) -> "Client":
        """Decode the body as JSON into ``dest`` (dict update or list extend)."""
        self._ensure_executed()
        data = self._read_all()
        if data is not None:
            try:
                decode_json_into(data, dest)
            except ChainError as e:
                self._record(e)
        return self

    def xml(self, dest: dict[str, Any]) -> "Client":
        """Decode the body as XML into ``dest`` as ``{root_tag: content}``."""
        self._ensure_executed()
        data = self._read_all()
        if data is not None:
            try:
                decode_xml_into(data, dest)
            except ChainError as e:
                self._record(e)
        return self

    def get_byte_body(self) -> tuple[bytes, list[ChainError]]:
        """Read the whole body."""
        self._ensure_executed()
        data = self._read_all()
        return data or b"", self.get_errors()

    def get_raw_body(self) -> tuple[ResponseBody | None, list[ChainError]]:
        """Get the body stream without reading it."""
        self._ensure_executed()
        if self._result is None or self._result.body is None:
            self._record(NoResponseError())
            return None, self.get_errors()
        return self._result.body, self.get_errors()

    def get_request(self) -> tuple[httpx.Request | None, list[ChainError]]:
        """Get the finalized request, finalizing it without sending if needed."""
        with self._lock:
            request = self._finalize()
        return request, self.get_errors()

    def get_response(self) -> tuple[httpx.Response | None, list[ChainError]]:
        """Get the final response of the last call, executing it if needed."""
        self._ensure_executed()
        response = self._result.response if self._result is not None else None
        return response, self.get_errors()

    def get_errors(self) -> list[ChainError]:
        """Get a copy of the accumulated errors, in order of occurrence."""
        return list(self._errors)

    @property
    def result(self) -> ExecutionResult | None:
        """Get the outcome of the last executed call."""
        return self._result

    def close(self) -> list[ChainError]:
        """Drain and close the current response.

        Returns:
            The accumulated errors.
        """
        with self._lock:
            result = self._result
            if self._result_open and result is not None and result.body is not None:
                try:
                    result.body.drain()
                except ChainError as e:
                    self._record(e)
                except (httpx.HTTPError, httpx.StreamError) as e:
                    self._record(wrap_transport_error(e))
            self._release_result()
        return self.get_errors()

    def __enter__(self) -> "Client":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
        self._writer.drain()
        with self._lock:
            self._detach_session()


def new_client(
    config: ClientConfig | None = None,
    transport: httpx.BaseTransport | None = None,
) -> Client:
    """Create a client with its own session and cookie jar."""
    return Client(config, transport=transport)


def get_http_client() -> Client:
    """Create a client bound to the process-wide shared session.

    Each call returns a new client with isolated request state, so
    concurrent callers never share builder state; only the connection pool
    is shared.
    """
    session = get_shared_session()
    return Client(session=session)


def get(url: str) -> Client:
    """Start a GET request on a new client."""
    return new_client().get(url)


def post(url: str) -> Client:
    """Start a POST request on a new client."""
    return new_client().post(url)


def put(url: str) -> Client:
    """Start a PUT request on a new client."""
    return new_client().put(url)


def patch(url: str) -> Client:
    """Start a PATCH request on a new client."""
    return new_client().patch(url)


def delete(url: str) -> Client:
    """Start a DELETE request on a new client."""
    return new_client().delete(url)


def head(url: str) -> Client:
    """Start a HEAD request on a new client."""
    return new_client().head(url)
