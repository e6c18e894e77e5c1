"""Retry policy and per-call retry state."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** retry), max_delay) ± jitter,
    unless the server supplied a retry-after hint, which is used without
    jitter but still capped at max_delay.

    Attributes:
        max_attempts: Total attempts, including the first one
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap for every delay, server hints included
        multiplier: Geometric growth factor
        jitter: Spread delays to avoid synchronised retries
        jitter_range: Jitter as a fraction of the delay (0.0-1.0)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def next_delay(self, retry: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry number *retry* (0 = first retry)."""
        if retry_after is not None and retry_after >= 0:
            return min(retry_after, self.max_delay)

        delay = min(self.base_delay * (self.multiplier ** retry), self.max_delay)
        if self.jitter and delay > 0:
            spread = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def allows_another(self, attempts: int) -> bool:
        return attempts < self.max_attempts


@dataclass
class CallState:
    """State of one logical call across its attempts. Never persisted."""

    label: str
    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    errors: List[Tuple[int, BaseException]] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.errors[-1][1] if self.errors else None

    def record_failure(self, error: BaseException) -> None:
        self.errors.append((self.attempts, error))

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()
