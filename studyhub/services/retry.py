"""Bounded exponential backoff for compare-and-swap retries."""

import asyncio
import random
from dataclasses import dataclass

from studyhub.core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to retry a conflicting write and how long to wait between.

    Backoff after failed attempt ``n`` (1-indexed) is
    ``min(base * factor ** (n - 1), max) + random(0, jitter)`` milliseconds.
    """

    max_attempts: int = 5
    base_delay_ms: int = 10
    backoff_factor: float = 2.0
    max_delay_ms: int = 200
    jitter_ms: int = 5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0 or self.jitter_ms < 0:
            raise ValueError("Retry delays cannot be negative")

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "RetryPolicy":
        config = config or default_settings
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay_ms=config.retry_base_delay_ms,
            backoff_factor=config.retry_backoff_factor,
            max_delay_ms=config.retry_max_delay_ms,
            jitter_ms=config.retry_jitter_ms,
        )

    @classmethod
    def immediate(cls, max_attempts: int = 5) -> "RetryPolicy":
        """No waiting between attempts (tests, batch tools)."""
        return cls(max_attempts=max_attempts, base_delay_ms=0, max_delay_ms=0, jitter_ms=0)

    def backoff_ms(self, attempt: int) -> float:
        exponent = max(attempt - 1, 0)
        capped = min(self.base_delay_ms * (self.backoff_factor ** exponent), self.max_delay_ms)
        jitter = random.randint(0, self.jitter_ms) if self.jitter_ms > 0 else 0
        return capped + jitter

    async def wait(self, attempt: int) -> None:
        delay_ms = self.backoff_ms(attempt)
        # sleep(0) still yields so other contenders can commit
        await asyncio.sleep(delay_ms / 1000)
