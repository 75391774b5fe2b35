"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RecoveryConfig:
    """Backoff settings for the recovery policy.

    max_attempts = 0 disables the retry budget (retry forever).
    """

    base_delay: float = 5.0
    backoff_factor: float = 2.0
    max_delay: float = 300.0
    max_attempts: int = 10


@dataclass(frozen=True)
class RelayConfig:
    """Polling and selection settings for the relay."""

    poll_interval: float = 1.0
    page_size: int = 100
    history_limit: int = 100
    dialog_limit: int = 100
    max_selection_prompts: int = 10
    max_forward_attempts: int = 3
    source_id: Optional[int] = None
    target_id: Optional[int] = None
