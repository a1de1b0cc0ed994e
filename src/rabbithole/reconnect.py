"""
Reconnect policies.

A policy maps the 1-based attempt number after an unexpected close to a
delay in seconds, or None to stop retrying.
"""

import random
from typing import Optional, Protocol


class ReconnectPolicy(Protocol):
    def next_delay(self, attempt: int) -> Optional[float]: ...


class NoReconnect:
    """Never retry. The connection stays down until connect() is called again."""

    def next_delay(self, attempt: int) -> Optional[float]:
        return None


class ExponentialBackoff:
    def __init__(
        self,
        initial: float = 1.0,
        factor: float = 2.0,
        max_delay: float = 30.0,
        max_attempts: Optional[int] = 10,
        jitter: float = 0.1,
        rng: Optional[random.Random] = None,
    ):
        if initial <= 0 or factor < 1:
            raise ValueError("initial must be > 0 and factor >= 1")
        self.initial = initial
        self.factor = factor
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.jitter = jitter
        self._rng = rng or random.Random()

    def next_delay(self, attempt: int) -> Optional[float]:
        if self.max_attempts is not None and attempt > self.max_attempts:
            return None
        delay = min(self.initial * self.factor ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay += delay * self.jitter * self._rng.uniform(-1.0, 1.0)
        return max(delay, 0.0)
