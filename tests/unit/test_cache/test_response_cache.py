"""Unit tests for the response cache and cache entries."""

import threading

import httpx
import pytest

from chainhttp import cache as cache_module
from chainhttp.cache import CacheEntry, ResponseCache, request_identity


def make_entry(body: bytes = b"payload", url: str = "http://example.com/") -> CacheEntry:
    return CacheEntry(status_code=200, url=url, headers=(("x-test", "1"),), body=body)


class TestCacheEntry:
    """Tests for CacheEntry snapshots."""

    @pytest.mark.unit
    def test_capture_drops_transfer_headers(self) -> None:
        """Test that wire encoding headers are not stored."""
        request = httpx.Request("GET", "http://example.com/data")
        response = httpx.Response(
            200,
            headers={
                "Content-Type": "application/json",
                "Content-Encoding": "gzip",
                "Content-Length": "42",
            },
            content=b"",
            request=request,
        )

        entry = CacheEntry.capture(response, b'{"ok": true}')

        names = {key.lower() for key, _ in entry.headers}
        assert "content-type" in names
        assert "content-encoding" not in names
        assert "content-length" not in names
        assert entry.url == "http://example.com/data"
        assert entry.body_size == len(b'{"ok": true}')

    @pytest.mark.unit
    def test_to_response_builds_fresh_objects(self) -> None:
        """Test that each materialized response has its own readable body."""
        entry = make_entry(b"hello")
        request = httpx.Request("GET", "http://example.com/")

        first = entry.to_response(request)
        second = entry.to_response(request)

        assert first is not second
        assert first.status_code == 200
        assert first.content == b"hello"
        assert second.content == b"hello"
        assert first.headers["x-test"] == "1"
        assert first.request is request

    @pytest.mark.unit
    def test_entry_is_frozen(self) -> None:
        """Test that entries cannot be mutated after capture."""
        entry = make_entry()
        with pytest.raises(ValueError, match="frozen"):
            entry.body = b"changed"  # type: ignore[misc]


class TestRequestIdentity:
    """Tests for cache key derivation."""

    @pytest.mark.unit
    def test_method_and_url(self) -> None:
        """Test that identity combines method and full URL."""
        request = httpx.Request("get", "http://example.com/a?b=1")
        assert request_identity(request) == "GET http://example.com/a?b=1"

    @pytest.mark.unit
    def test_key_headers_distinguish_requests(self) -> None:
        """Test that selected headers take part in the key."""
        english = httpx.Request("GET", "http://example.com/", headers={"Accept-Language": "en"})
        german = httpx.Request("GET", "http://example.com/", headers={"Accept-Language": "de"})

        assert request_identity(english) == request_identity(german)
        assert request_identity(english, ["accept-language"]) != request_identity(
            german, ["accept-language"]
        )


class TestResponseCache:
    """Tests for ResponseCache storage semantics."""

    @pytest.mark.unit
    def test_get_set_clear(self) -> None:
        """Test the basic store lifecycle."""
        cache = ResponseCache()
        entry = make_entry()

        assert cache.get("GET http://example.com/") is None
        cache.set("GET http://example.com/", entry)
        assert cache.get("GET http://example.com/") == entry
        assert "GET http://example.com/" in cache
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0
        assert cache.get("GET http://example.com/") is None

    @pytest.mark.unit
    def test_set_replaces_existing_entry(self) -> None:
        """Test that a second store for the same identity wins."""
        cache = ResponseCache()
        cache.set("k", make_entry(b"old"))
        cache.set("k", make_entry(b"new"))

        entry = cache.get("k")
        assert entry is not None
        assert entry.body == b"new"
        assert len(cache) == 1

    @pytest.mark.unit
    def test_lru_eviction(self) -> None:
        """Test that the least recently used entry is evicted first."""
        cache = ResponseCache(max_entries=2)
        cache.set("a", make_entry(b"a"))
        cache.set("b", make_entry(b"b"))
        assert cache.get("a") is not None  # a becomes most recent

        cache.set("c", make_entry(b"c"))

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    @pytest.mark.unit
    def test_ttl_expiry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that entries older than the TTL are dropped on lookup."""
        now = [1000.0]
        monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
        cache = ResponseCache(ttl_seconds=10.0)
        cache.set("k", make_entry())

        now[0] += 5.0
        assert cache.get("k") is not None

        now[0] += 6.0
        assert cache.get("k") is None
        assert "k" not in cache

    @pytest.mark.unit
    def test_concurrent_writers(self) -> None:
        """Test that parallel stores do not lose entries."""
        cache = ResponseCache()

        def writer(offset: int) -> None:
            for i in range(50):
                cache.set(f"k{offset}-{i}", make_entry())

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 400
