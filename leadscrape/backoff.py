from __future__ import annotations

import random
from typing import Optional


class BackoffStrategy:
    """Retry delay schedule.

    Computes sleep duration as base * multiplier^(attempt-1), capped at a
    configurable maximum, plus optional random jitter. With jitter=0 the
    schedule is deterministic; multiplier=1.0 gives a fixed delay."""

    def __init__(
        self,
        base_seconds: float = 0.5,
        max_seconds: float = 10.0,
        multiplier: float = 2.0,
        jitter: float = 0.0,
    ) -> None:
        self._base = base_seconds
        self._max = max_seconds
        self._multiplier = multiplier
        self._jitter = jitter

    @classmethod
    def fixed(cls, seconds: float) -> "BackoffStrategy":
        return cls(base_seconds=seconds, max_seconds=seconds, multiplier=1.0, jitter=0.0)

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the sleep duration in seconds after the given failed attempt."""
        exp = min(self._max, self._base * (self._multiplier ** max(attempt - 1, 0)))
        if self._jitter <= 0:
            return exp
        return exp + random.uniform(0, exp * self._jitter)
