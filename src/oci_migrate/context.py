"""Cancellation and deadline handling shared by every provider call."""

import threading
import time
from typing import Optional

from .exceptions import MigrationCancelled


class RunContext:
    """Carries a cancellation flag and an optional deadline through a run.

    Every gateway call and every poll iteration calls :meth:`check`, so an
    external cancel (or the deadline passing) stops each task at its next
    suspension point. Tasks observe cancellation independently.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._cancelled = threading.Event()
        self.deadline: Optional[float] = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def detached(self) -> "RunContext":
        """A context that ignores this one's cancellation and deadline.

        Used for the final audit write of a task, which must land even when
        the run was interrupted.
        """
        return RunContext()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        if self._cancelled.is_set():
            raise MigrationCancelled("run cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise MigrationCancelled("run deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancel or deadline."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._cancelled.wait(seconds)
        self.check()
