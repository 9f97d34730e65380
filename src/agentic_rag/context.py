"""Cancellable, deadline-bearing context threaded through every external call."""

from __future__ import annotations

import threading
import time

from agentic_rag.errors import DeadlineExceededError, OperationCancelledError


class RunContext:
    """Carries a cancel flag and an optional monotonic deadline.

    Executors call `check()` before every model, store or tool call, and
    network clients bound their timeouts with `remaining()` so that a
    cancelled or expired request surfaces as an error instead of hanging.
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._cancelled = threading.Event()
        self.deadline: float | None = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    @classmethod
    def background(cls) -> "RunContext":
        return cls()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self, default: float | None = None) -> float | None:
        """Seconds left before the deadline, capped by `default` when given."""
        if self.deadline is None:
            return default
        left = max(0.0, self.deadline - time.monotonic())
        return left if default is None else min(left, default)

    def check(self) -> None:
        if self._cancelled.is_set():
            raise OperationCancelledError("operation cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceededError("deadline exceeded")
