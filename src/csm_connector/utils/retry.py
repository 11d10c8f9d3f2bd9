"""Bounded retry and polling helpers."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from csm_connector.errors import BuildFailure


logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """How many times to try and how long to wait in between."""
    attempts: int = 5
    delay: float = 2.0
    backoff: float = 1.0

    def wait(self):
        """Wait strategy between attempts: fixed, or growing by ``backoff``."""
        if self.backoff == 1.0:
            return wait_fixed(self.delay)
        return wait_exponential(multiplier=self.delay, exp_base=self.backoff)


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    The last exception is re-raised once every attempt failed.
    """
    policy = policy or RetryPolicy()

    def log_retry(retry_state: RetryCallState):
        logger.warning(
            f"{description} failed (attempt {retry_state.attempt_number}/{policy.attempts}): "
            f"{retry_state.outcome.exception()}. Retrying in {retry_state.next_action.sleep}s"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=policy.wait(),
        retry=retry_if_exception_type(retry_on),
        before_sleep=log_retry,
        sleep=sleep,
        reraise=True,
    )
    try:
        return await retrying(operation)
    except retry_on as e:
        logger.error(f"{description} failed after {policy.attempts} attempts: {e}")
        raise


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    done: Callable[[T], bool],
    attempts: int,
    interval: float,
    description: str = "remote task",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Fetch state until ``done`` holds, giving up after ``attempts`` fetches."""
    for attempt in range(1, attempts + 1):
        state = await fetch()
        if done(state):
            return state
        logger.debug(f"Waiting for {description} ({attempt}/{attempts})")
        await sleep(interval)
    raise BuildFailure(f"Timed out waiting for {description} after {attempts} checks")
