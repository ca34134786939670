"""Redelivery backoff policies for the outbox.

Usage:
    policy = BackoffPolicy.exponential(base_delay=60, max_delay=3600)
    delay = policy.compute_delay(attempt=2)   # ~120s
"""

import random
from dataclasses import dataclass
from enum import Enum


class BackoffKind(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


@dataclass
class BackoffPolicy:
    """Delay before the n-th redelivery attempt (1-based)."""
    kind: BackoffKind = BackoffKind.EXPONENTIAL
    base_delay: float = 60.0
    max_delay: float = 3600.0
    jitter: bool = False
    jitter_range: float = 0.2

    @classmethod
    def fixed(cls, delay: float = 60.0) -> "BackoffPolicy":
        return cls(kind=BackoffKind.FIXED, base_delay=delay, max_delay=delay)

    @classmethod
    def exponential(
        cls, base_delay: float = 60.0, max_delay: float = 3600.0, jitter: bool = False
    ) -> "BackoffPolicy":
        return cls(
            kind=BackoffKind.EXPONENTIAL,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=jitter,
        )

    @classmethod
    def linear(cls, base_delay: float = 60.0, max_delay: float = 3600.0) -> "BackoffPolicy":
        return cls(kind=BackoffKind.LINEAR, base_delay=base_delay, max_delay=max_delay)

    def compute_delay(self, attempt: int) -> float:
        """Seconds to wait before ``attempt``; capped at ``max_delay``."""
        attempt = max(1, attempt)
        if self.kind == BackoffKind.EXPONENTIAL:
            delay = self.base_delay * (2 ** (attempt - 1))
        elif self.kind == BackoffKind.LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay

        delay = min(delay, self.max_delay)

        if self.jitter and delay > 0:
            spread = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-spread, spread))

        return round(delay, 3)
