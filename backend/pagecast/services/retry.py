# backend/pagecast/services/retry.py
import random
from dataclasses import dataclass, field
from typing import Callable

from ..config import settings


@dataclass
class RetryPolicy:
    """Bounded exponential backoff between page job attempts.

    The delay before retry ``n`` (1-based count of failed attempts) is
    ``min_delay * factor ** (n - 1)``, multiplied by a random factor in
    ``[1, 2)`` when ``randomize`` is set, and never above ``max_delay``.
    """

    max_attempts: int = 3
    min_delay: float = 1.0
    max_delay: float = 10.0
    factor: float = 2.0
    randomize: bool = True
    rng: Callable[[], float] = field(default=random.random, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.min_delay < 0 or self.max_delay < self.min_delay:
            raise ValueError("delays must satisfy 0 <= min_delay <= max_delay")
        if self.factor < 1:
            raise ValueError("factor must be at least 1")

    @classmethod
    def from_settings(cls, config=settings) -> "RetryPolicy":
        return cls(
            max_attempts=config.JOB_MAX_ATTEMPTS,
            min_delay=config.RETRY_MIN_DELAY_SECONDS,
            max_delay=config.RETRY_MAX_DELAY_SECONDS,
            factor=config.RETRY_FACTOR,
            randomize=config.RETRY_RANDOMIZE,
        )

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt`"""
        delay = self.min_delay * (self.factor ** max(attempt - 1, 0))
        if self.randomize:
            delay *= 1 + self.rng()
        return min(delay, self.max_delay)
