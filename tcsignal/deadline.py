"""tcsignal.deadline - Cancellable timeout scopes.

A run is bounded by one overall ``Deadline`` created at process start.
Blocking calls (metadata fetch, child process wait, SQS send) take the
deadline and size their own timeouts from ``remaining()``. Nested scopes
come from ``child()`` and never outlive their parent.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from tcsignal.errors import DeadlineExceeded


class Deadline:
    def __init__(self, expires_at: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        """Return a deadline that expires ``seconds`` from now."""
        return cls(clock() + seconds, clock=clock)

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    @property
    def expires_at(self) -> Optional[float]:
        return self._expires_at

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry, floored at 0. ``None`` means unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def child(self, seconds: float) -> "Deadline":
        """Return a nested scope bounded by both ``seconds`` and this deadline."""
        candidate = self._clock() + seconds
        if self._expires_at is not None:
            candidate = min(candidate, self._expires_at)
        return Deadline(candidate, clock=self._clock)

    def timeout(self, cap: Optional[float] = None) -> Optional[float]:
        """Timeout to hand a blocking call: the remaining time, optionally capped."""
        remaining = self.remaining()
        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(cap, remaining)

    def check(self, operation: str) -> None:
        if self.expired():
            raise DeadlineExceeded(f"deadline exceeded before {operation}")
