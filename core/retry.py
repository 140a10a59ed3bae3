"""
Bounded exponential backoff shared by every vendor call site.

One policy object decides how many times to retry, how long to wait and
which failures are worth retrying. Call sites never loop on their own.

Usage:
    policy = BackoffPolicy(max_retries=2, base_delay_seconds=1.0)
    job = policy.call(lambda: client.get("/print-jobs/42/"), operation="poll")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from .exceptions import VendorError

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Default predicate: vendor errors flagged as transient."""
    return isinstance(exc, VendorError) and exc.retryable


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Retry policy for transient failures.

    Attributes:
        max_retries: Retries after the first attempt (2 -> up to 3 calls)
        base_delay_seconds: Delay before the first retry, doubled each time
        max_delay_seconds: Upper bound for a single delay
        retry_on: Predicate selecting retryable exceptions
        sleep: Injected for tests
    """

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    retry_on: Callable[[BaseException], bool] = field(default=is_retryable)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry number `retry_number` (1-based)."""
        return min(self.max_delay_seconds, self.base_delay_seconds * (2 ** (retry_number - 1)))

    def call(
        self,
        func: Callable[[], T],
        operation: str = "vendor call",
        logger: Optional[logging.Logger] = None,
    ) -> T:
        """
        Run `func`, retrying retryable failures.

        Non-retryable exceptions propagate immediately. After the last
        retry the final exception propagates unchanged.
        """
        log = logger or logging.getLogger("storyprint.core.retry")
        attempt = 0
        while True:
            try:
                return func()
            except Exception as exc:
                if not self.retry_on(exc) or attempt >= self.max_retries:
                    raise
                attempt += 1
                delay = self.delay_for(attempt)
                log.warning(
                    f"{operation} failed ({exc}); retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                self.sleep(delay)
