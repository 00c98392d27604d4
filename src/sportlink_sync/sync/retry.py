"""Pacing and retry helpers for remote mutations.

The remote APIs we write to are rate limited, so consecutive mutation
calls are separated by a fixed delay.  Mutations that support it can also
be retried with exponential backoff plus jitter.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], None]


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff.

    The delay before retry ``n`` (zero-based) is
    ``base_delay * 2**n + uniform(0, max_jitter)`` seconds.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_jitter: float = 1.0

    def backoff(self, attempt: int, rng: random.Random | None = None) -> float:
        jitter = (rng or random).uniform(0, self.max_jitter) if self.max_jitter else 0.0
        return self.base_delay * (2**attempt) + jitter


SINGLE_ATTEMPT = RetryPolicy(max_attempts=1)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy = SINGLE_ATTEMPT,
    *,
    sleep: Sleeper = time.sleep,
    description: str = "remote call",
) -> T:
    """Call *func* until it succeeds or the policy's attempts run out.

    Raises:
        Exception: Whatever the final attempt raised.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            if attempt == attempts - 1:
                raise
            delay = policy.backoff(attempt)
            logger.debug(
                "Retry %d/%d for %s after %.1fs: %s",
                attempt + 1, attempts, description, delay, exc,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


@dataclass
class Pacer:
    """Enforces a fixed delay between consecutive remote mutations.

    ``before_call`` sleeps only when an earlier call already went through
    this pacer, so ``n`` paced items cost exactly ``n - 1`` delays and no
    delay follows the last item.  Share one pacer between every component
    that writes to the same remote API.
    """

    delay: float = 2.0
    sleep: Sleeper = field(default=time.sleep)
    calls: int = field(default=0, init=False)

    def before_call(self) -> None:
        if self.calls and self.delay > 0:
            self.sleep(self.delay)
        self.calls += 1
