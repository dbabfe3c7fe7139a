"""Routing mock transport shared by the unit tests."""

import threading
from collections.abc import Callable

import httpx

from chainhttp.client import Client
from chainhttp.config import ClientConfig


Handler = Callable[[httpx.Request], httpx.Response]


def streamed_response(
    status_code: int,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Build a response whose body is read lazily, like one off the wire."""
    return httpx.Response(
        status_code,
        headers=headers or {},
        stream=httpx.ByteStream(body),
    )


class Router:
    """Path-keyed handler for ``httpx.MockTransport``.

    Records every request it receives, redirect hops included.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def add(
        self,
        path: str,
        status_code: int = 200,
        body: bytes = b"",
        headers: dict[str, str] | None = None,
    ) -> "Router":
        def handler(request: httpx.Request) -> httpx.Response:
            return streamed_response(status_code, body, headers)

        self.routes[path] = handler
        return self

    def add_redirect(self, path: str, location: str, status_code: int = 302) -> "Router":
        return self.add(path, status_code, headers={"Location": location})

    def add_handler(self, path: str, handler: Handler) -> "Router":
        self.routes[path] = handler
        return self

    def paths(self) -> list[str]:
        with self._lock:
            return [request.url.path for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return streamed_response(404, b"not found")
        return handler(request)


def make_client(router: Router, config: ClientConfig | None = None) -> Client:
    """Create a client whose private session sends through ``router``."""
    return Client(config or ClientConfig(), transport=httpx.MockTransport(router))
