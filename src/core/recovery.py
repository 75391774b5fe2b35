"""Failure recovery policy.

Every fallible step of the relay hands its exception to ``RecoveryPolicy``,
which sleeps before the caller retries. Flood waits sleep for the duration
the platform asked for; everything else backs off exponentially from the
base delay and counts against a retry budget. When the budget runs out the
policy raises ``RetryExhausted`` so a supervisor can restart, alert or halt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.config import RecoveryConfig
from core.errors import RateLimitedError, RetryExhausted
from core.rate_limit import RateLimitPolicy

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RecoveryPolicy:
    def __init__(
        self,
        config: Optional[RecoveryConfig] = None,
        rate_limit: Optional[RateLimitPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config or RecoveryConfig()
        self._rate_limit = rate_limit or RateLimitPolicy()
        self._sleep = sleep
        self._failures = 0

    @property
    def failures(self) -> int:
        """Consecutive failures since the last reset."""

        return self._failures

    def reset(self) -> None:
        self._failures = 0

    def next_delay(self) -> float:
        """Backoff for the current failure count (1-based)."""

        cfg = self._config
        exponent = max(self._failures - 1, 0)
        return min(cfg.base_delay * (cfg.backoff_factor ** exponent), cfg.max_delay)

    async def recover(self, error: BaseException) -> None:
        """Wait before the caller retries, or raise RetryExhausted."""

        if isinstance(error, RateLimitedError):
            flood_wait = self._rate_limit.evaluate(error)
            if flood_wait is not None:
                LOGGER.warning(
                    "Telegram is rate limiting requests, waiting %s minute(s) before retrying",
                    flood_wait.minutes,
                )
                await self._sleep(flood_wait.suspend_seconds)
                return

        self._failures += 1
        max_attempts = self._config.max_attempts
        if max_attempts and self._failures > max_attempts:
            raise RetryExhausted(self._failures - 1, error) from error

        delay = self.next_delay()
        LOGGER.warning(
            "Recoverable error (%r), retrying in %.0fs (attempt %s/%s)",
            error,
            delay,
            self._failures,
            max_attempts or "inf",
        )
        await self._sleep(delay)
