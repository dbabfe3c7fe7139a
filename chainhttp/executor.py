"""Request execution: cache lookup, round trip, redirects, gzip, snapshots."""

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from http import HTTPStatus

import httpx
import structlog

from chainhttp.body import ResponseBody, open_body
from chainhttp.cache import CacheEntry, CacheStore, request_identity
from chainhttp.constants import (
    CACHE_WRITER_MAX_WORKERS,
    CANCEL_POLL_INTERVAL_SECONDS,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_MULTIPLE_CHOICES,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_REDIRECT_MAX,
    HTTP_STATUS_SERVER_ERROR_MAX,
)
from chainhttp.context import RequestContext
from chainhttp.errors import (
    CancelledError,
    ChainError,
    ErrorClass,
    HTTPStatusError,
    InvalidRedirectLocationError,
    TooManyRedirectsError,
    TransportError,
)
from chainhttp.metrics import ClientMetrics
from chainhttp.redact import redact_headers, redact_url_credentials
from chainhttp.shared import Session
from chainhttp.state_machine import ExchangeState, ExchangeStateMachine


logger = structlog.get_logger()

# Headers dropped from a redirect hop that leaves the original origin
_ORIGIN_BOUND_HEADERS = ("authorization", "cookie", "proxy-authorization")


class _LazyPool:
    """Thread pool created on first use and shared process-wide."""

    def __init__(self, name: str, max_workers: int) -> None:
        self._name = name
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., object], *args: object) -> Future:
        with self._lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=self._name,
                )
            return self._pool.submit(fn, *args)


_cache_pool = _LazyPool("chainhttp-cache", CACHE_WRITER_MAX_WORKERS)
_round_trip_pool = _LazyPool("chainhttp-roundtrip", 16)


@dataclass(frozen=True)
class RedirectPolicy:
    """Redirect following configuration for one call."""

    enabled: bool = False
    max_redirects: int = 0

    @property
    def active(self) -> bool:
        """Check if redirects should be followed."""
        return self.enabled and self.max_redirects > 0


@dataclass
class ExecutionResult:
    """Outcome of one executed call."""

    request: httpx.Request
    response: httpx.Response | None
    body: ResponseBody | None
    state: ExchangeState
    errors: list[ChainError] = field(default_factory=list)
    from_cache: bool = False
    hops: int = 0
    cache_write: Future | None = None

    @property
    def is_success(self) -> bool:
        """Check if the call completed without recorded errors."""
        return self.state == ExchangeState.COMPLETED and not self.errors


class CacheWriter:
    """Schedules background snapshot stores and tracks the pending ones."""

    def __init__(self, metrics: ClientMetrics | None = None) -> None:
        self._pending: list[Future] = []
        self._lock = threading.Lock()
        self._metrics = metrics or ClientMetrics.get_instance()

    def submit(
        self,
        cache: CacheStore,
        identity: str,
        response: httpx.Response,
        body: bytes,
    ) -> Future:
        """Schedule a snapshot store without blocking the caller.

        Args:
            cache: Target cache.
            identity: Request identity.
            response: Completed response (status, URL and headers are read).
            body: Decoded body; bytes are immutable, so the task never
                shares state with the caller's stream.

        Returns:
            Future of the store task.
        """
        future = _cache_pool.submit(self._store, cache, identity, response, body)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def drain(self, timeout: float | None = None) -> None:
        """Wait for scheduled stores to finish."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def _store(
        self,
        cache: CacheStore,
        identity: str,
        response: httpx.Response,
        body: bytes,
    ) -> None:
        try:
            entry = CacheEntry.capture(response, body)
            cache.set(identity, entry)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "cache_store_failed",
                component="cache",
                identity=identity,
                error=str(e),
            )
            return
        self._metrics.record_cache_store(entry.body_size)
        logger.debug(
            "cache_store",
            component="cache",
            identity=identity,
            status_code=entry.status_code,
            bytes=entry.body_size,
        )


def wrap_transport_error(error: Exception) -> TransportError:
    """Classify an httpx failure as a TransportError.

    Args:
        error: Exception raised by httpx.

    Returns:
        Wrapped error.
    """
    if isinstance(error, httpx.TimeoutException):
        return TransportError(
            f"Request timed out: {error}", ErrorClass.NETWORK_TIMEOUT, error
        )
    if isinstance(error, httpx.ConnectError):
        return TransportError(
            f"Connection failed: {error}", ErrorClass.CONNECTION_ERROR, error
        )
    return TransportError(f"Transport error: {error}", ErrorClass.TRANSPORT, error)


def is_followable_redirect(status_code: int) -> bool:
    """Check if a status is a 3xx that may be followed automatically.

    300 Multiple Choices is never followed.
    """
    return (
        HTTP_STATUS_OK_MAX <= status_code < HTTP_STATUS_REDIRECT_MAX
        and status_code != HTTP_STATUS_MULTIPLE_CHOICES
    )


def _close_abandoned(future: Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    response = future.result()
    if isinstance(response, httpx.Response):
        response.close()


class Executor:
    """Performs the round trip for a finalized request.

    Handles, in order:
    - Cache lookup (a hit skips the network and redirect logic)
    - The round trip through the session
    - Manual redirect following over the raw transport
    - gzip decoding of the response body
    - Background snapshot of successful responses into the cache
    """

    def __init__(
        self,
        session: Session,
        writer: CacheWriter,
        metrics: ClientMetrics | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            session: Session whose client and raw transport are used.
            writer: Background cache writer of the owning client.
            metrics: Metrics sink, the singleton if None.
        """
        self._session = session
        self._writer = writer
        self._metrics = metrics or ClientMetrics.get_instance()

    def execute(
        self,
        request: httpx.Request,
        redirect: RedirectPolicy,
        cache: CacheStore | None = None,
        key_headers: Iterable[str] = (),
        context: RequestContext | None = None,
    ) -> ExecutionResult:
        """Execute one call.

        Args:
            request: Finalized request, never mutated. A context deadline
                applies to a per-call copy.
            redirect: Redirect policy.
            cache: Cache to consult and fill, None when caching is off.
            key_headers: Headers that take part in the cache key.
            context: Optional cancellation token.

        Returns:
            ExecutionResult with response, body stream and recorded errors.
        """
        start_time_ns = time.perf_counter_ns()
        machine = ExchangeStateMachine(str(request.url))
        log = logger.bind(
            component="executor",
            method=request.method,
            url=redact_url_credentials(str(request.url)),
        )

        identity: str | None = None
        if cache is not None:
            self._writer.drain()
            identity = request_identity(request, key_headers)
            entry = cache.get(identity)
            if entry is not None:
                machine.transition(ExchangeState.CACHE_HIT)
                self._metrics.record_cache_hit()
                response = entry.to_response(request)
                machine.transition(ExchangeState.COMPLETED)
                log.debug("cache_hit", status_code=entry.status_code)
                return ExecutionResult(
                    request=request,
                    response=response,
                    body=ResponseBody.from_bytes(entry.body),
                    state=machine.state,
                    from_cache=True,
                )

        if context is not None:
            request = with_deadline(request, context)

        machine.transition(ExchangeState.SENT)
        log.debug("request_sent", headers=redact_headers(request.headers.multi_items()))
        try:
            response = self._round_trip(self._send_via_session, request, context)
        except ChainError as e:
            machine.transition(ExchangeState.FAILED)
            self._metrics.record_failure(e.error_class)
            log.warning("exchange_failed", error_class=e.error_class.value, error=str(e))
            return ExecutionResult(
                request=request,
                response=None,
                body=None,
                state=machine.state,
                errors=[e],
            )
        self._metrics.record_request(response.status_code)

        errors: list[ChainError] = []
        if redirect.active and is_followable_redirect(response.status_code):
            response, redirect_error = self._follow_redirects(
                machine, request, response, redirect.max_redirects, context, log
            )
            if redirect_error is not None:
                errors.append(redirect_error)

        try:
            body, gzip_error = open_body(response)
        except (httpx.HTTPError, httpx.StreamError) as e:
            errors.append(wrap_transport_error(e))
            response.close()
            body, gzip_error = ResponseBody.from_bytes(b""), None
        if gzip_error is not None:
            errors.append(gzip_error)

        cache_write: Future | None = None
        if cache is not None and identity is not None and not errors:
            try:
                data = body.readall()
            except ChainError as e:
                errors.append(e)
                body = ResponseBody.from_bytes(b"")
            except (httpx.HTTPError, httpx.StreamError) as e:
                errors.append(wrap_transport_error(e))
                body = ResponseBody.from_bytes(b"")
            else:
                body = ResponseBody.from_bytes(data)
                cache_write = self._writer.submit(cache, identity, response, data)

        machine.transition(ExchangeState.FAILED if errors else ExchangeState.COMPLETED)
        for error in errors:
            self._metrics.record_failure(error.error_class)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        log.info(
            "exchange_complete",
            status_code=response.status_code,
            hops=machine.hops,
            state=machine.state.name,
            duration_ms=round(duration_ms, 2),
            error_classes=[e.error_class.value for e in errors] or None,
        )
        return ExecutionResult(
            request=request,
            response=response,
            body=body,
            state=machine.state,
            errors=errors,
            hops=machine.hops,
            cache_write=cache_write,
        )

    def _follow_redirects(
        self,
        machine: ExchangeStateMachine,
        request: httpx.Request,
        response: httpx.Response,
        max_redirects: int,
        context: RequestContext | None,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[httpx.Response, ChainError | None]:
        """Follow a redirect chain over the raw transport.

        Args:
            machine: Exchange state machine (counts hops).
            request: Request that produced ``response``.
            response: First 3xx response.
            max_redirects: Hop bound.
            context: Optional cancellation token.
            log: Bound logger.

        Returns:
            Tuple of the last response received and an optional error.
        """
        current = request
        while True:
            if machine.hops >= max_redirects:
                return response, TooManyRedirectsError(max_redirects)

            location = response.headers.get("location")
            if not location:
                return response, InvalidRedirectLocationError()
            try:
                target = current.url.join(location)
            except httpx.InvalidURL as e:
                return response, InvalidRedirectLocationError(
                    f"Invalid Redirect Location: {e}"
                )

            hop = clone_for_hop(current, target)
            machine.transition(ExchangeState.REDIRECTING)
            self._metrics.record_redirect()
            log.debug(
                "redirect_hop",
                hop=machine.hops,
                status_code=response.status_code,
                location=redact_url_credentials(str(target)),
            )

            try:
                next_response = self._round_trip(self._send_via_transport, hop, context)
            except ChainError as e:
                return response, e

            response.close()
            response = next_response
            current = hop
            status = response.status_code
            self._metrics.record_request(status)

            if HTTP_STATUS_OK_MIN <= status < HTTP_STATUS_OK_MAX:
                return response, None
            if is_followable_redirect(status):
                continue
            if HTTP_STATUS_BAD_REQUEST <= status < HTTP_STATUS_SERVER_ERROR_MAX:
                return response, HTTPStatusError(status, _reason_phrase(status))
            return response, None

    def _send_via_session(self, request: httpx.Request) -> httpx.Response:
        return self._session.client.send(request, stream=True, follow_redirects=False)

    def _send_via_transport(self, request: httpx.Request) -> httpx.Response:
        # Raw round trip: no cookie, auth or redirect handling from the client
        response = self._session.transport.handle_request(request)
        response.request = request
        return response

    def _round_trip(
        self,
        send: Callable[[httpx.Request], httpx.Response],
        request: httpx.Request,
        context: RequestContext | None,
    ) -> httpx.Response:
        """Run one round trip, honoring cancellation when a context is given.

        Raises:
            TransportError: If httpx fails.
            CancelledError: If the context is done before a response arrives.
        """
        if context is None:
            try:
                return send(request)
            except (httpx.HTTPError, httpx.StreamError) as e:
                raise wrap_transport_error(e) from e

        if context.done():
            raise CancelledError()

        future = _round_trip_pool.submit(send, request)
        while True:
            done, _ = wait([future], timeout=CANCEL_POLL_INTERVAL_SECONDS)
            if done:
                break
            if context.done():
                future.add_done_callback(_close_abandoned)
                reason = "deadline exceeded" if context.expired else "cancelled"
                raise CancelledError(f"Request {reason}")

        try:
            return future.result()
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise wrap_transport_error(e) from e


def with_deadline(request: httpx.Request, context: RequestContext) -> httpx.Request:
    """Copy ``request`` with the time left before the context deadline as timeout.

    Returns ``request`` itself when the context has no deadline.
    """
    remaining = context.remaining()
    if remaining is None:
        return request
    return httpx.Request(
        request.method,
        request.url,
        headers=request.headers,
        stream=request.stream,
        extensions={
            **request.extensions,
            "timeout": httpx.Timeout(max(remaining, 0.001)).as_dict(),
        },
    )


def clone_for_hop(request: httpx.Request, target: httpx.URL) -> httpx.Request:
    """Build the request for a redirect hop.

    The hop reuses method, headers and body stream of ``request``. The Host
    header is rebuilt for the target, and credentials are dropped when the
    target leaves the original origin.

    Args:
        request: Request of the previous hop.
        target: Absolute redirect target.

    Returns:
        New request object; ``request`` is left untouched.
    """
    headers = request.headers.copy()
    if "host" in headers:
        del headers["host"]
    if _origin(request.url) != _origin(target):
        for name in _ORIGIN_BOUND_HEADERS:
            if name in headers:
                del headers[name]
    return httpx.Request(
        request.method,
        target,
        headers=headers,
        stream=request.stream,
        extensions=dict(request.extensions),
    )


def _origin(url: httpx.URL) -> tuple[str, str, int | None]:
    return (url.scheme, url.host, url.port)


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return f"HTTP {status_code}"
