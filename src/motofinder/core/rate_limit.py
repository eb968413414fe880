"""
Simple in-process rate limiting.

Public geocoding services ask clients to stay under a fixed request rate
(Nominatim: one request per second). The limiter waits for the computed refill
time only; it never sleeps a fixed amount "just in case".
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class TokenBucketRateLimiter:
    """Token bucket limiter for N events per minute (best-effort, single event loop)."""

    max_per_minute: float
    burst: float | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def __post_init__(self) -> None:
        rpm = float(self.max_per_minute)
        if rpm <= 0:
            raise ValueError("max_per_minute must be > 0")
        self._capacity = float(self.burst) if self.burst is not None else float(rpm)
        self._tokens = self._capacity
        self._refill_per_sec = rpm / 60.0
        self._last = self.clock()

    def _refill(self) -> None:
        now = self.clock()
        elapsed = now - self._last
        if elapsed <= 0:
            return
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_per_sec)
        self._last = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Take `tokens` if available right now; never waits."""
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    async def acquire(self, tokens: float = 1.0) -> None:
        need = float(tokens)
        if need <= 0:
            return
        while not self.try_acquire(need):
            missing = need - self._tokens
            await asyncio.sleep(max(0.01, missing / max(1e-6, self._refill_per_sec)))
