from __future__ import annotations

import time
from collections import defaultdict
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

import anyio

from ..logging import get_logger

logger = get_logger(__name__)


class RetryAfter(Exception):
    def __init__(self, retry_after: float, description: str | None = None) -> None:
        super().__init__(description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)
        self.description = description


K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class ChatRateLimiter(Generic[K]):
    """Spaces outbound calls per key and honours server-side ``retry_after``."""

    def __init__(
        self,
        *,
        interval_for_key: Callable[[K], float],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        max_retries: int = 3,
    ) -> None:
        self._interval_for_key = interval_for_key
        self._clock = clock
        self._sleep = sleep
        self._max_retries = max_retries
        self._lock = anyio.Lock()
        self._next_at: dict[K, float] = defaultdict(float)

    async def reserve(self, key: K) -> float:
        """Book the next slot for ``key`` and return the delay until it."""
        async with self._lock:
            now = self._clock()
            target = max(now, self._next_at[key])
            interval = self._interval_for_key(key)
            self._next_at[key] = target + max(0.0, interval)
            return target - now

    async def acquire(self, key: K) -> None:
        delay = await self.reserve(key)
        if delay > 0:
            await self._sleep(delay)

    async def apply_retry_after(self, *, key: K, retry_after: float) -> None:
        delay = max(0.0, retry_after)
        async with self._lock:
            until = self._clock() + delay
            self._next_at[key] = max(self._next_at[key], until)
        await self._sleep(delay)

    async def call(self, key: K, execute: Callable[[], Awaitable[T]]) -> T | None:
        for attempt in range(self._max_retries + 1):
            await self.acquire(key)
            try:
                return await execute()
            except RetryAfter as exc:
                logger.info(
                    "limiter.retry_after",
                    key=key,
                    retry_after=exc.retry_after,
                    attempt=attempt,
                )
                await self.apply_retry_after(key=key, retry_after=exc.retry_after)
        logger.warning("limiter.gave_up", key=key, attempts=self._max_retries + 1)
        return None
