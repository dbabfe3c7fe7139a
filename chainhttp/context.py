"""Cancellation and deadline token for a single call."""

import threading
import time


class RequestContext:
    """Cancellation token attached to an outgoing request.

    A context carries an optional deadline and a cancellation flag that
    another thread can set. The executor turns the remaining time into the
    request timeout and stops waiting on the round trip once the context is
    done.
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize the context.

        Args:
            timeout: Seconds until the deadline, no deadline if None.
        """
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def with_timeout(cls, timeout: float) -> "RequestContext":
        """Create a context that expires after ``timeout`` seconds."""
        return cls(timeout=timeout)

    def cancel(self) -> None:
        """Cancel the context. Safe to call from any thread."""
        self._cancelled.set()

    def remaining(self) -> float | None:
        """Get seconds left before the deadline, None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        """Check if the context was cancelled explicitly."""
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        """Check if the deadline has passed."""
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def done(self) -> bool:
        """Check if the context was cancelled or expired."""
        return self.cancelled or self.expired

    def wait(self, timeout: float) -> bool:
        """Block until cancelled or ``timeout`` elapses.

        Returns:
            True if the context was cancelled.
        """
        return self._cancelled.wait(timeout)
