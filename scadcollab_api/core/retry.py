"""Bounded retry with linearly growing delay, used by the render loop."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RenderRetryPolicy:
    """``attempts`` tries, waiting ``attempt * base_delay`` seconds after failed try ``attempt``."""

    attempts: int = 3
    base_delay: float = 1.0

    def delay(self, attempt: int) -> float:
        return attempt * self.base_delay


@dataclass
class RetryOutcome:
    succeeded: bool
    attempts: int
    last_error: Exception | None = None


async def run_with_retry(
    action: Callable[[], Awaitable[object]],
    policy: RenderRetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_failure: Callable[[int, Exception], None] | None = None,
) -> RetryOutcome:
    """Call ``action`` until it succeeds or ``policy.attempts`` calls have failed.

    Failures matching ``retry_on`` are reported to ``on_failure`` and never
    raised; there is no wait after the final attempt.
    """
    last_error: Exception | None = None
    for attempt in range(1, policy.attempts + 1):
        try:
            await action()
        except retry_on as e:
            last_error = e
            if on_failure is not None:
                on_failure(attempt, e)
            if attempt < policy.attempts:
                await sleep(policy.delay(attempt))
            continue
        return RetryOutcome(succeeded=True, attempts=attempt)
    return RetryOutcome(succeeded=False, attempts=policy.attempts, last_error=last_error)
