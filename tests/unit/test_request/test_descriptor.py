"""Unit tests for header maps and request finalization."""

import base64
import io
from collections.abc import Generator

import httpx
import pytest

from chainhttp.errors import InvalidHostError, InvalidURLError
from chainhttp.request import (
    BasicAuth,
    HeaderMap,
    RequestDescriptor,
    canonical_header_key,
)


@pytest.fixture
def session() -> Generator[httpx.Client]:
    client = httpx.Client(headers={"User-Agent": "chainhttp-test"})
    yield client
    client.close()


class TestHeaderMap:
    """Tests for the case-insensitive header multimap."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("content-type", "Content-Type"),
            ("X-REQUEST-ID", "X-Request-Id"),
            (" accept ", "Accept"),
        ],
    )
    def test_canonical_key(self, raw: str, expected: str) -> None:
        """Test header name canonicalization."""
        assert canonical_header_key(raw) == expected

    @pytest.mark.unit
    def test_set_replaces_and_add_appends(self) -> None:
        """Test set/add semantics across differently cased keys."""
        headers = HeaderMap()
        headers.set("x-multi", "a")
        headers.set("X-Multi", "b")
        assert headers.get_list("x-multi") == ["b"]

        headers.add("X-MULTI", ["c", "d"])
        assert headers.get_list("x-multi") == ["b", "c", "d"]
        assert headers.get("x-multi") == "b"

    @pytest.mark.unit
    def test_remove_and_contains(self) -> None:
        """Test removal by any casing."""
        headers = HeaderMap({"Accept": "text/html"})
        assert "accept" in headers
        headers.remove("ACCEPT")
        assert "accept" not in headers
        assert headers.get("accept") is None

    @pytest.mark.unit
    def test_copy_is_independent(self) -> None:
        """Test that copies do not share value lists."""
        original = HeaderMap({"X-A": "1"})
        clone = original.copy()
        clone.add("X-A", "2")
        assert original.get_list("X-A") == ["1"]
        assert clone.multi_items() == [("X-A", "1"), ("X-A", "2")]


class TestFinalize:
    """Tests for RequestDescriptor.finalize."""

    @pytest.mark.unit
    def test_builds_request_with_normalized_url(self, session: httpx.Client) -> None:
        """Test that finalize validates the URL and marks the descriptor ready."""
        descriptor = RequestDescriptor()
        descriptor.url = "example.com/path"
        descriptor.touch()

        request = descriptor.finalize(session)

        assert str(request.url) == "http://example.com/path"
        assert request.method == "GET"
        assert request.headers["User-Agent"] == "chainhttp-test"
        assert descriptor.is_ready

    @pytest.mark.unit
    def test_mutation_invalidates_ready_request(self, session: httpx.Client) -> None:
        """Test that a builder change after finalize requires a new request."""
        descriptor = RequestDescriptor()
        descriptor.url = "http://example.com/"
        descriptor.finalize(session)

        descriptor.headers.set("X-New", "1")
        descriptor.touch()

        assert not descriptor.is_ready

    @pytest.mark.unit
    def test_basic_auth_header(self, session: httpx.Client) -> None:
        """Test that basic credentials become an Authorization header."""
        descriptor = RequestDescriptor()
        descriptor.url = "http://example.com/"
        descriptor.basic = BasicAuth("user", "pass")

        request = descriptor.finalize(session)

        expected = base64.b64encode(b"user:pass").decode("ascii")
        assert request.headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.unit
    def test_queued_cookies_join_raw_cookie_header(self, session: httpx.Client) -> None:
        """Test that queued cookies are appended to an existing Cookie header."""
        descriptor = RequestDescriptor()
        descriptor.url = "http://example.com/"
        descriptor.headers.set("Cookie", "raw=1")
        descriptor.cookies.extend([("a", "1"), ("b", "2")])

        request = descriptor.finalize(session)

        assert request.headers["Cookie"] == "raw=1; a=1; b=2"

    @pytest.mark.unit
    def test_reader_body_is_streamed(self, session: httpx.Client) -> None:
        """Test that a file-like body is sent as a stream."""
        descriptor = RequestDescriptor()
        descriptor.method = "POST"
        descriptor.url = "http://example.com/upload"
        descriptor.body = io.BytesIO(b"x" * 20000)

        request = descriptor.finalize(session)

        assert request.read() == b"x" * 20000

    @pytest.mark.unit
    def test_string_body(self, session: httpx.Client) -> None:
        """Test that a string body is encoded as UTF-8 content."""
        descriptor = RequestDescriptor()
        descriptor.method = "PUT"
        descriptor.url = "http://example.com/"
        descriptor.body = "héllo"

        request = descriptor.finalize(session)

        assert request.content == "héllo".encode()
        assert request.headers["Content-Length"] == str(len("héllo".encode()))

    @pytest.mark.unit
    def test_invalid_host_leaves_descriptor_unready(self, session: httpx.Client) -> None:
        """Test that validation failures propagate and no request is kept."""
        descriptor = RequestDescriptor()
        descriptor.url = "http://"

        with pytest.raises(InvalidHostError):
            descriptor.finalize(session)
        assert descriptor.request is None
        assert not descriptor.is_ready

    @pytest.mark.unit
    def test_invalid_url(self, session: httpx.Client) -> None:
        """Test that unparseable URLs raise InvalidURLError."""
        descriptor = RequestDescriptor()
        descriptor.url = "http://example.com:port/"

        with pytest.raises(InvalidURLError):
            descriptor.finalize(session)

    @pytest.mark.unit
    def test_adopt_prebuilt_request(self) -> None:
        """Test that an adopted request is used as is."""
        descriptor = RequestDescriptor()
        request = httpx.Request("DELETE", "http://example.com/item/1")

        descriptor.adopt(request)

        assert descriptor.is_ready
        assert descriptor.request is request
        assert descriptor.method == "DELETE"
