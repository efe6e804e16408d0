"""Stockwatch — Async Interval Throttle.

Bounds the rate of a sequential loop by enforcing a minimum interval
between consecutive iterations. The batch run keeps two independent
throttles: one between stores and one between subscriber deliveries.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)


class IntervalThrottle:
    """Minimum-interval throttle for sequential async loops.

    The first acquire() returns immediately. Each later acquire() sleeps
    until at least ``min_interval`` seconds have passed since the previous
    iteration ended, whatever its outcome. An iteration ends when mark()
    is called; without mark() the previous acquire() counts as the end.

    Attributes:
        min_interval: Minimum seconds between consecutive acquisitions.
        name: Label used in log messages.
    """

    def __init__(self, min_interval_seconds: float, name: str = "throttle") -> None:
        """Initialize the throttle.

        Args:
            min_interval_seconds: Minimum spacing between iterations. 0 disables waiting.
            name: Label for log messages.

        Raises:
            ValueError: If the interval is negative.
        """
        if min_interval_seconds < 0:
            raise ValueError(
                f"min_interval_seconds must be >= 0, got {min_interval_seconds}"
            )
        self.min_interval = min_interval_seconds
        self.name = name
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()
        self._total_waited = 0.0

        logger.debug(
            "Throttle '%s' initialized: min interval %.3f seconds",
            name, min_interval_seconds,
        )

    @property
    def total_waited(self) -> float:
        """Total seconds spent sleeping in acquire()."""
        return self._total_waited

    async def acquire(self) -> None:
        """Wait until the next iteration is allowed to start."""
        async with self._lock:
            if self._last is not None and self.min_interval > 0:
                wait_time = self._last + self.min_interval - time.monotonic()
                if wait_time > 0:
                    logger.debug(
                        "Throttle '%s': waiting %.3f seconds", self.name, wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    self._total_waited += wait_time
            self._last = time.monotonic()

    def mark(self) -> None:
        """Record that the current iteration has just finished.

        The next acquire() then waits the full interval from now, so the
        pause comes on top of however long the iteration took.
        """
        self._last = time.monotonic()

    def reset(self) -> None:
        """Forget the previous iteration so the next acquire() is immediate."""
        self._last = None

    async def __aenter__(self) -> "IntervalThrottle":
        """Support ``async with throttle:`` usage.

        Returns:
            The throttle after acquiring.
        """
        await self.acquire()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Mark the iteration as finished."""
        self.mark()

    def __repr__(self) -> str:
        return f"IntervalThrottle(name={self.name!r}, min_interval={self.min_interval}s)"
