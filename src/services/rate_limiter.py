"""Fixed-window rate limiter keyed by (subject, action).

Callers check the limiter before issuing a generation request; the
orchestrator itself never does. The clock is injected so tests control time,
and the periodic cleanup of expired windows only runs between `start()` and
`stop()`.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from src.generation.errors import RateLimitExceeded
from src.utils.logger import logger

Clock = Callable[[], float]


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """In-memory limiter: `max_requests` per `window_seconds` per (subject, action)."""

    def __init__(
        self,
        window_seconds: int = 60,
        max_requests: int = 10,
        cleanup_interval: int = 300,
        clock: Clock = time.monotonic,
    ) -> None:
        if window_seconds < 1 or max_requests < 1 or cleanup_interval < 1:
            raise ValueError("window_seconds, max_requests and cleanup_interval must be at least 1")

        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._windows: dict[tuple[str, str], _Window] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def check_limit(self, subject_id: str, action: str) -> bool:
        """Count one request against the (subject, action) window.

        Returns:
            True when the request is allowed.

        Raises:
            RateLimitExceeded: With the seconds left until the window resets.
        """
        key = (subject_id, action)
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now > window.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.max_requests:
            retry_after = max(1, math.ceil(window.reset_at - now))
            logger.warning(
                f"Rate limit hit for action '{action}', retry in {retry_after}s",
                extra={"user_id": subject_id, "action": action},
            )
            raise RateLimitExceeded(self.max_requests, self.window_seconds, retry_after)

        window.count += 1
        return True

    def cleanup(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug(f"Rate limiter cleanup removed {len(expired)} expired window(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    async def start(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if self.running:
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"Rate limiter cleanup started (every {self.cleanup_interval}s)")

    async def stop(self) -> None:
        """Cancel the cleanup task and wait for it to finish."""
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("Rate limiter cleanup stopped")

    async def __aenter__(self) -> "FixedWindowRateLimiter":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
