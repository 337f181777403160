# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from relaychain.errors import CancelledError, RetryError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry policy.

    max_attempts: total number of attempts (>= 1)
    interval: seconds to wait before the second attempt
    backoff: multiplier applied to the wait after every failed attempt
    max_interval: upper bound for a single wait
    """

    max_attempts: int = 5
    interval: float = 5.0
    backoff: float = 1.0
    max_interval: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval < 0:
            raise ValueError("interval must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Wait after the given (1-based) failed attempt."""
        delay = self.interval * (self.backoff ** (attempt - 1))
        if self.max_interval is not None:
            delay = min(delay, self.max_interval)
        return delay


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    cancel=None,
) -> T:
    """
    Run fn until it succeeds or the policy is exhausted.

    Raises RetryError chained to the last exception. A tripped cancel token
    stops the loop between attempts with CancelledError.
    """
    last_exc: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        if cancel is not None and cancel.is_cancelled():
            raise CancelledError("cancelled before attempt %d" % attempt)
        try:
            return fn()
        except retry_on as exc:
            last_exc = exc
            if on_retry:
                on_retry(attempt, exc)
            if attempt == policy.max_attempts:
                break
            sleep(policy.delay_for(attempt))
    raise RetryError(
        f"{getattr(fn, '__name__', 'call')} failed after {policy.max_attempts} attempts"
    ) from last_exc
