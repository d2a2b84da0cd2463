"""Bounded retry policy for external calls.

The policy is a plain configuration object threaded into the extractor,
so tests can inject a fake backend that fails N times and a no-op sleep.
Retrying itself is delegated to ``tenacity``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransientError(Exception):
    """A failure worth retrying (timeout, 5xx, 429, reset connection)."""


class RetryPolicy(BaseModel):
    """Retry count and exponential backoff."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.5, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff_seconds: float = Field(default=8.0, ge=0.0)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = self.backoff_seconds * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_backoff_seconds)

    def delays(self) -> list[float]:
        return [self.delay_for(n) for n in range(1, self.max_attempts)]

    def retrying(
        self,
        *,
        label: str = "call",
        sleep: Callable[[float], None] = time.sleep,
    ) -> Retrying:
        """A ``tenacity.Retrying`` controller for this policy."""

        def _log_retry(state: RetryCallState) -> None:
            delay = state.next_action.sleep if state.next_action else 0.0
            logger.debug(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                label,
                state.attempt_number,
                self.max_attempts,
                state.outcome.exception() if state.outcome else None,
                delay,
            )

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_seconds,
                exp_base=self.multiplier,
                max=self.max_backoff_seconds,
            ),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_retry,
            sleep=sleep,
            reraise=True,
        )

    def call(
        self,
        fn: Callable[[], T],
        *,
        label: str = "call",
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """Run ``fn`` until it succeeds or attempts are exhausted.

        Only :class:`TransientError` is retried; anything else propagates
        immediately. The last ``TransientError`` is re-raised when all
        attempts fail.
        """
        return self.retrying(label=label, sleep=sleep)(fn)


NO_RETRY = RetryPolicy(max_attempts=1, backoff_seconds=0.0)
