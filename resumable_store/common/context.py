"""Cancellation and deadline propagation for blocking storage calls.

Every store and storage operation accepts an optional ``ctx`` keyword. The
context is checked before each backend call; once cancelled or expired the
operation raises instead of issuing further requests.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


class OperationCancelledError(RuntimeError):
    """Raised when a call context was cancelled before the operation ran."""


class DeadlineExceededError(OperationCancelledError):
    """Raised when a call context's deadline passed before the operation ran."""


@dataclass
class CallContext:
    """Caller-owned cancellation token with an optional monotonic deadline."""

    deadline: float | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float) -> "CallContext":
        if seconds < 0:
            raise ValueError("timeout must not be negative")
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check(self, operation: str = "operation") -> None:
        if self._cancelled.is_set():
            raise OperationCancelledError(f"{operation} cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceededError(f"{operation} deadline exceeded")


def ensure_active(ctx: CallContext | None, operation: str) -> None:
    """Raise if ``ctx`` is cancelled or expired; ``None`` never expires."""
    if ctx is not None:
        ctx.check(operation)
