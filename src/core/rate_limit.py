"""Flood-wait interpretation (core domain)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from core.errors import RpcError

FLOOD_WAIT_PREFIX = "FLOOD_WAIT_"
SAFETY_MARGIN_SECONDS = 5


@dataclass(frozen=True)
class FloodWait:
    """How long the platform asked us to back off."""

    seconds: int

    @property
    def minutes(self) -> int:
        """Operator-facing wait, rounded up to whole minutes."""

        return max(1, math.ceil(self.seconds / 60))

    @property
    def suspend_seconds(self) -> int:
        return self.seconds + SAFETY_MARGIN_SECONDS


class RateLimitPolicy:
    """Classify platform errors that encode a flood wait."""

    def evaluate(self, error: BaseException) -> Optional[FloodWait]:
        """Return the flood wait carried by ``error``, or None if not applicable."""

        if not isinstance(error, RpcError):
            return None
        if not error.message.startswith(FLOOD_WAIT_PREFIX):
            return None
        seconds = error.suffix
        if seconds is None:
            return None
        return FloodWait(seconds=seconds)
