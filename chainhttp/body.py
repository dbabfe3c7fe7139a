"""Response body streams.

The caller reads the body through a ``ResponseBody``, a binary file-like
object fed by a chunk iterator. gzip-encoded responses are decoded lazily
while the caller reads.
"""

import io
import zlib
from collections.abc import Callable, Iterator

import httpx

from chainhttp.constants import DEFAULT_CHUNK_SIZE, GZIP_MAGIC
from chainhttp.errors import DecompressionError


class ResponseBody(io.RawIOBase):
    """Readable binary stream over a chunk iterator.

    Closing the stream runs the ``on_close`` callback, which releases the
    underlying connection.
    """

    def __init__(
        self,
        chunks: Iterator[bytes],
        on_close: Callable[[], None] | None = None,
    ) -> None:
        super().__init__()
        self._chunks = chunks
        self._pending = b""
        self._exhausted = False
        self._on_close = on_close

    @classmethod
    def from_bytes(cls, data: bytes) -> "ResponseBody":
        """Create a stream over an in-memory body."""
        return cls(iter((data,)) if data else iter(()))

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        while not self._pending and not self._exhausted:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                self._exhausted = True
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def readall(self) -> bytes:
        """Read the remaining body into a growing buffer."""
        buffer = io.BytesIO()
        buffer.write(self._pending)
        self._pending = b""
        if not self._exhausted:
            for chunk in self._chunks:
                buffer.write(chunk)
            self._exhausted = True
        return buffer.getvalue()

    def drain(self) -> None:
        """Discard the unread remainder of the body."""
        self._pending = b""
        if not self._exhausted:
            for _ in self._chunks:
                pass
            self._exhausted = True

    def close(self) -> None:
        if not self.closed and self._on_close is not None:
            self._on_close()
        super().close()


def gunzip_chunks(first: bytes, rest: Iterator[bytes]) -> Iterator[bytes]:
    """Decode a gzip stream chunk by chunk.

    Args:
        first: First raw chunk, already known to carry the gzip header.
        rest: Remaining raw chunks.

    Yields:
        Decoded chunks.

    Raises:
        DecompressionError: If the compressed data is corrupt.
    """
    decoder = zlib.decompressobj(16 + zlib.MAX_WBITS)
    try:
        if first:
            yield decoder.decompress(first)
        for chunk in rest:
            yield decoder.decompress(chunk)
        tail = decoder.flush()
    except zlib.error as e:
        raise DecompressionError(f"gzip: {e}") from e
    if tail:
        yield tail


def _prepend(first: bytes, rest: Iterator[bytes]) -> Iterator[bytes]:
    if first:
        yield first
    yield from rest


def open_body(response: httpx.Response) -> tuple[ResponseBody, DecompressionError | None]:
    """Expose a response body as a stream, decoding gzip when declared.

    A response that httpx has already buffered is served from memory, as
    its content is decoded by httpx. Otherwise the raw stream is read and,
    for ``Content-Encoding: gzip``, wrapped in a decompressor. If the gzip
    header is missing the raw stream is still returned along with the error.

    Args:
        response: Response whose body has not been read by the caller.

    Returns:
        Tuple of the body stream and an optional decompression error.
    """
    if response.is_stream_consumed:
        return ResponseBody.from_bytes(response.content), None

    encoding = response.headers.get("content-encoding", "").strip().lower()
    if encoding != "gzip":
        return ResponseBody(response.iter_bytes(), on_close=response.close), None

    raw = response.iter_raw(chunk_size=DEFAULT_CHUNK_SIZE)
    first = b""
    # The header may arrive split across chunks
    while len(first) < len(GZIP_MAGIC):
        chunk = next(raw, None)
        if chunk is None:
            break
        first += chunk

    if not first:
        return ResponseBody(iter(()), on_close=response.close), None
    if not first.startswith(GZIP_MAGIC):
        body = ResponseBody(_prepend(first, raw), on_close=response.close)
        return body, DecompressionError()
    return ResponseBody(gunzip_chunks(first, raw), on_close=response.close), None
