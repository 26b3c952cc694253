from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from .backoff import BackoffStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStrategy:
    """Bounded retry with a delay between attempts.

    The operation is invoked at most ``max_attempts`` times. When every
    attempt fails, the exception raised by the last attempt propagates
    unchanged; earlier exceptions are discarded."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int = 2000,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        sync_sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self._backoff = backoff or BackoffStrategy.fixed(base_delay_ms / 1000.0)
        self._sleep = sleep or asyncio.sleep
        self._sync_sleep = sync_sleep or time.sleep

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a coroutine factory until it succeeds or attempts run out."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:  # noqa: BLE001
                if attempt >= self.max_attempts:
                    raise
                delay = self._backoff.get_sleep(attempt, type(exc).__name__)
                logger.debug(
                    "attempt %d/%d failed (%s: %s), retrying in %.2fs",
                    attempt, self.max_attempts, type(exc).__name__, exc, delay,
                )
                await self._sleep(delay)

    def call(self, fn: Callable[[], T]) -> T:
        """Blocking counterpart of execute() for worker threads."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except Exception as exc:  # noqa: BLE001
                if attempt >= self.max_attempts:
                    raise
                self._sync_sleep(self._backoff.get_sleep(attempt, type(exc).__name__))
