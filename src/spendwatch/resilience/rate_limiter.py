from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from ..clock import Clock, SystemClock
from ..errors import ConfigError
from ..logging import SpendLogger

RateLimitStatus = Literal["normal", "approaching", "exceeded"]

APPROACHING_FRACTION = 0.8


@dataclass
class RateWindow:
    """Mutable fixed-window counter. Owned by exactly one RateLimiter."""

    window_start: float = 0.0
    calls_in_window: int = 0


class RateLimiter:
    """
    Coarse fixed-window limiter.

    Bursts at window boundaries are allowed; the wrapped call is also
    protected by retry/backoff. Pass a ``window`` to share limiter state
    explicitly across pipeline instances.
    """

    def __init__(
        self,
        calls_per_window: int,
        window_size: float = 60.0,
        *,
        window: Optional[RateWindow] = None,
        clock: Optional[Clock] = None,
        logger: Optional[SpendLogger] = None,
    ) -> None:
        if calls_per_window < 1:
            raise ConfigError("calls_per_window must be >= 1")
        if window_size <= 0:
            raise ConfigError("window_size must be > 0")
        self.calls_per_window = calls_per_window
        self.window_size = window_size
        self.clock = clock or SystemClock()
        self.logger = logger or SpendLogger("RateLimiter")
        self._window = window or RateWindow(window_start=self.clock.now())
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a call slot is available, then take it."""
        async with self._lock:
            now = self.clock.now()
            self._roll_window(now)

            if self._window.calls_in_window >= self.calls_per_window:
                wait = self.window_size - (now - self._window.window_start)
                self.logger.warning(
                    "rate_limit_wait",
                    wait_s=round(wait, 3),
                    calls_in_window=self._window.calls_in_window,
                    limit=self.calls_per_window,
                )
                await self.clock.sleep(wait)
                self._window.window_start = self.clock.now()
                self._window.calls_in_window = 0

            self._window.calls_in_window += 1

    def status(self) -> RateLimitStatus:
        calls = self._current_calls()
        if calls >= self.calls_per_window:
            return "exceeded"
        if calls >= self.calls_per_window * APPROACHING_FRACTION:
            return "approaching"
        return "normal"

    def get_status(self) -> Dict[str, Any]:
        return {
            "calls_in_window": self._current_calls(),
            "calls_per_window": self.calls_per_window,
            "window_size_s": self.window_size,
            "status": self.status(),
        }

    def _current_calls(self) -> int:
        # Read-only view: an elapsed window counts as empty without resetting it.
        if self.clock.now() - self._window.window_start >= self.window_size:
            return 0
        return self._window.calls_in_window

    def _roll_window(self, now: float) -> None:
        if now - self._window.window_start >= self.window_size:
            self._window.window_start = now
            self._window.calls_in_window = 0
