"""
Deadline — the one cancellation mechanism shared by every blocking call.

A ``Deadline`` is created once per invocation (``--timeout``) and handed to
the adapters, and once per readiness wait (``--wait``). The two are
independent: pod listings and sleeps inside a wait are bounded by the wait
deadline alone, so a long ``--wait`` is never cut short by the invocation
budget.
"""

from __future__ import annotations

import time

from kubeship.core.errors import Cancelled


class Deadline:
    """A monotonic point in time after which work must stop."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    @classmethod
    def unbounded(cls) -> Deadline:
        return cls(float("inf"))

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, what: str = "operation") -> None:
        """Raise ``Cancelled`` if the deadline has passed."""
        if self.expired:
            raise Cancelled(f"Deadline exceeded while waiting for {what}")

    def timeout_for(self, cap: float) -> float:
        """Timeout for one blocking call: the smaller of *cap* and what is left.

        Raises:
            Cancelled: If nothing is left.
        """
        self.check()
        return min(cap, self.remaining())

    def __repr__(self) -> str:
        return f"<Deadline remaining={self.remaining():.1f}s>"
