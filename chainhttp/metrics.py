"""Metrics collection for request chains."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar

from chainhttp.errors import ErrorClass


@dataclass
class ClientMetrics:
    """Counters for request execution.

    Singleton class that tracks round trips by status, cache hits and
    stores, redirect hops and recorded failures. Counters are updated from
    the caller's thread and from background cache writers.
    """

    requests_total: dict[int, int] = field(default_factory=dict)
    cache_hits_total: int = 0
    cache_stores_total: int = 0
    redirect_hops_total: int = 0
    failures_total: dict[str, int] = field(default_factory=dict)
    bytes_cached_total: int = 0

    _instance: ClassVar["ClientMetrics | None"] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def get_instance(cls) -> "ClientMetrics":
        """Get singleton metrics instance."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._instance_lock:
            cls._instance = None

    def record_request(self, status_code: int) -> None:
        """Record a completed round trip.

        Args:
            status_code: HTTP status code.
        """
        with self._lock:
            self.requests_total[status_code] = self.requests_total.get(status_code, 0) + 1

    def record_cache_hit(self) -> None:
        """Record a response served from the cache."""
        with self._lock:
            self.cache_hits_total += 1

    def record_cache_store(self, bytes_stored: int) -> None:
        """Record a snapshot written to the cache.

        Args:
            bytes_stored: Size of the stored body.
        """
        with self._lock:
            self.cache_stores_total += 1
            self.bytes_cached_total += bytes_stored

    def record_redirect(self) -> None:
        """Record a redirect hop."""
        with self._lock:
            self.redirect_hops_total += 1

    def record_failure(self, error_class: ErrorClass) -> None:
        """Record a chain failure.

        Args:
            error_class: Classification of the failure.
        """
        key = error_class.value
        with self._lock:
            self.failures_total[key] = self.failures_total.get(key, 0) + 1

    @property
    def round_trips_total(self) -> int:
        """Total number of network round trips, redirect hops included."""
        with self._lock:
            return sum(self.requests_total.values())

    def to_dict(self) -> dict[str, int | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "requests_total": dict(self.requests_total),
                "cache_hits_total": self.cache_hits_total,
                "cache_stores_total": self.cache_stores_total,
                "redirect_hops_total": self.redirect_hops_total,
                "failures_total": dict(self.failures_total),
                "bytes_cached_total": self.bytes_cached_total,
            }
