"""
Turn Deadline

Monotonic end-to-end budget threaded through generation, review,
regeneration and execution. Every suspension point checks it, and
per-call timeouts are clipped to whatever budget remains.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from kqlassist.models.errors import DeadlineExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """
    End-to-end deadline for one user turn.

    A deadline created with ``seconds=None`` never expires; it still
    applies per-call timeouts passed to ``run``.

    Usage:
        deadline = Deadline(30.0)
        result = await deadline.run(client.post(url), "execute", timeout=10.0)
    """

    def __init__(
        self,
        seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if seconds is not None and seconds <= 0:
            raise ValueError("Deadline budget must be positive")
        self.budget_seconds = seconds
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    @property
    def is_bounded(self) -> bool:
        return self._expires_at is not None

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded. Never negative."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str) -> None:
        """Raise DeadlineExceeded if the budget is spent."""
        if self.expired:
            logger.warning(
                f"Deadline exceeded before {stage}",
                extra={"stage": stage, "budget_seconds": self.budget_seconds},
            )
            raise DeadlineExceeded(stage, self.budget_seconds)

    def clip(self, timeout: float | None) -> float | None:
        """Clip a per-call timeout to the remaining budget."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    async def run(self, awaitable: Awaitable[T], stage: str, timeout: float | None = None) -> T:
        """
        Await ``awaitable`` within the per-call timeout and the deadline.

        Raises:
            DeadlineExceeded: If the turn deadline ran out
            TimeoutError: If only the per-call timeout ran out
        """
        try:
            self.check(stage)
        except DeadlineExceeded:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise

        limit = self.clip(timeout)
        if limit is None:
            return await awaitable

        # The limit came from the remaining budget rather than the per-call timeout
        clipped = timeout is None or limit < timeout
        try:
            return await asyncio.wait_for(awaitable, limit)
        except TimeoutError:
            if clipped or self.expired:
                raise DeadlineExceeded(stage, self.budget_seconds) from None
            raise
