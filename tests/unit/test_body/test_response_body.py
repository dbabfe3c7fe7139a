"""Unit tests for response body streams and gzip decoding."""

import gzip

import httpx
import pytest

from chainhttp.body import ResponseBody, gunzip_chunks, open_body
from chainhttp.errors import DecompressionError


def lazy_response(body: bytes, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(200, headers=headers or {}, stream=httpx.ByteStream(body))


class TestResponseBody:
    """Tests for the ResponseBody stream."""

    @pytest.mark.unit
    def test_read_in_pieces(self) -> None:
        """Test that partial reads walk across chunk boundaries."""
        body = ResponseBody(iter([b"abc", b"", b"defg"]))
        assert body.read(2) == b"ab"
        # Raw reads return at most what the current chunk holds
        assert body.read(3) == b"c"
        assert body.read() == b"defg"
        assert body.read() == b""

    @pytest.mark.unit
    def test_readall_after_partial_read(self) -> None:
        """Test that readall returns only the unread remainder."""
        body = ResponseBody.from_bytes(b"hello world")
        assert body.read(6) == b"hello "
        assert body.readall() == b"world"

    @pytest.mark.unit
    def test_close_runs_callback_once(self) -> None:
        """Test that closing releases the underlying resource once."""
        calls: list[int] = []
        body = ResponseBody(iter([b"x"]), on_close=lambda: calls.append(1))
        body.close()
        body.close()
        assert calls == [1]
        assert body.closed

    @pytest.mark.unit
    def test_drain_discards_remainder(self) -> None:
        """Test that drain consumes everything left."""
        chunks = iter([b"a", b"b", b"c"])
        body = ResponseBody(chunks)
        body.read(1)
        body.drain()
        assert next(chunks, None) is None
        assert body.read() == b""


class TestGzip:
    """Tests for gzip decoding in open_body."""

    @pytest.mark.unit
    def test_gzip_body_is_decoded(self) -> None:
        """Test that a gzip response decodes to the original payload."""
        payload = b'{"message": "compressed"}' * 100
        response = lazy_response(gzip.compress(payload), {"Content-Encoding": "gzip"})

        body, error = open_body(response)

        assert error is None
        assert body.readall() == payload

    @pytest.mark.unit
    def test_invalid_gzip_header_exposes_raw_stream(self) -> None:
        """Test that a bad gzip header is reported and the raw body kept."""
        response = lazy_response(b"plain text, not gzip", {"Content-Encoding": "gzip"})

        body, error = open_body(response)

        assert isinstance(error, DecompressionError)
        assert str(error) == "gzip: invalid header"
        assert body.readall() == b"plain text, not gzip"

    @pytest.mark.unit
    def test_empty_gzip_body(self) -> None:
        """Test that an empty gzip-declared body is not an error."""
        response = lazy_response(b"", {"Content-Encoding": "gzip"})

        body, error = open_body(response)

        assert error is None
        assert body.readall() == b""

    @pytest.mark.unit
    def test_identity_body_passes_through(self) -> None:
        """Test that bodies without encoding are streamed unchanged."""
        response = lazy_response(b"unencoded")

        body, error = open_body(response)

        assert error is None
        assert body.readall() == b"unencoded"

    @pytest.mark.unit
    def test_buffered_response_served_from_memory(self) -> None:
        """Test that an already read response is served from its content."""
        response = httpx.Response(200, content=b"buffered")

        body, error = open_body(response)

        assert error is None
        assert body.readall() == b"buffered"

    @pytest.mark.unit
    def test_corrupt_gzip_data_raises_on_read(self) -> None:
        """Test that a checksum mismatch surfaces while reading."""
        compressed = bytearray(gzip.compress(b"some data to compress" * 50))
        compressed[-8] ^= 0xFF

        with pytest.raises(DecompressionError):
            b"".join(gunzip_chunks(bytes(compressed), iter(())))
