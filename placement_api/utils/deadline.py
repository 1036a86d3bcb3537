"""
Caller-supplied deadlines for the generation chain
"""
import time
from typing import Optional


class Deadline:
    """
    Absolute point in (monotonic) time after which work should stop.

    A Deadline built with ``seconds=None`` never expires.
    """

    def __init__(self, seconds: Optional[float] = None):
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(seconds)

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, clamped at 0; None when unbounded"""
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cap(self, seconds: Optional[float]) -> "Deadline":
        """Return a deadline that is the earlier of this one and ``seconds`` from now"""
        remaining = self.remaining()
        if seconds is None:
            return Deadline(remaining)
        if remaining is None:
            return Deadline(seconds)
        return Deadline(min(remaining, seconds))

    def __repr__(self):
        return f"<Deadline(remaining={self.remaining()})>"
