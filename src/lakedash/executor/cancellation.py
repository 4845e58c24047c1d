"""Deadline and cancellation signal for a single call."""

import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class CallContext:
    """Carries a call's deadline and a cancel flag down to the executor.

    deadline is on the time.monotonic() clock; None means no deadline.
    """

    deadline: float | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, timeout: timedelta | float | None) -> "CallContext":
        """Context whose deadline is `timeout` from now (0/None = no deadline)."""
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        if not timeout or timeout <= 0:
            return cls()
        return cls(deadline=time.monotonic() + timeout)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, None when unbounded."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    @property
    def done(self) -> bool:
        """True once cancelled or past the deadline."""
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0
