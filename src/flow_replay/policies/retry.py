"""
Retry policy with linear or exponential backoff.

Retries are applied once, by the step runner. Handlers never retry
internally.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from flow_replay.exceptions import ActionError, GlobalTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnRetry = Callable[[int, Exception, float], Awaitable[None]]


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        retries: Retries after the first attempt (attempts = retries + 1)
        interval_ms: Base delay between attempts
        backoff: none, linear or exp
        max_interval_ms: Cap for the computed delay
        jitter: none or full (uniform between 0 and the delay)
        retry_on: Error codes eligible for retry, None for all
    """
    retries: int = 0
    interval_ms: int = 0
    backoff: str = "none"
    max_interval_ms: Optional[int] = None
    jitter: Optional[str] = None
    retry_on: Optional[List[str]] = None

    @property
    def max_attempts(self) -> int:
        return max(0, self.retries) + 1

    @classmethod
    def from_policy(cls, policy: Any) -> "RetryConfig":
        """Build from a step retry (``count``) or an action retry policy (``retries``)."""
        if policy is None:
            return cls()
        retries = getattr(policy, "retries", None)
        if retries is None:
            retries = getattr(policy, "count", 0)
        return cls(
            retries=int(retries or 0),
            interval_ms=int(getattr(policy, "interval_ms", 0) or 0),
            backoff=getattr(policy, "backoff", "none") or "none",
            max_interval_ms=getattr(policy, "max_interval_ms", None),
            jitter=getattr(policy, "jitter", None),
            retry_on=getattr(policy, "retry_on", None),
        )


def compute_delay_ms(config: RetryConfig, attempt: int) -> float:
    """
    Delay before retrying after failed attempt ``attempt`` (1-based).

    none: interval; linear: interval * attempt; exp: interval * 2^(attempt-1).
    """
    base = float(max(0, config.interval_ms))
    if config.backoff == "linear":
        delay = base * attempt
    elif config.backoff == "exp":
        delay = base * (2 ** (attempt - 1))
    else:
        delay = base
    if config.max_interval_ms is not None:
        delay = min(delay, float(config.max_interval_ms))
    if config.jitter == "full":
        delay = random.uniform(0, delay)
    return delay


def is_retryable(error: Exception, config: RetryConfig) -> bool:
    if isinstance(error, GlobalTimeoutError):
        return False
    if isinstance(error, ActionError):
        if not error.retryable:
            return False
        if config.retry_on is not None:
            return error.code.value in config.retry_on
    elif config.retry_on is not None:
        return "UNKNOWN" in config.retry_on
    return True


async def retry_async(
    func: Callable[[int], Awaitable[T]],
    config: RetryConfig,
    on_retry: Optional[OnRetry] = None,
    remaining_budget_ms: Optional[Callable[[], Optional[float]]] = None,
) -> T:
    """
    Execute ``func(attempt)`` with retry logic.

    Args:
        func: Async callable receiving the 1-based attempt number
        config: Retry configuration
        on_retry: Awaited before each backoff delay with (attempt, error, delay_ms)
        remaining_budget_ms: Returns the run's remaining budget; a delay that
            would exceed it ends the retries

    Raises:
        The last exception if all attempts fail
    """
    attempt = 1
    while True:
        try:
            return await func(attempt)
        except Exception as e:
            if attempt >= config.max_attempts or not is_retryable(e, config):
                raise

            delay_ms = compute_delay_ms(config, attempt)
            if remaining_budget_ms is not None:
                remaining = remaining_budget_ms()
                if remaining is not None and delay_ms >= remaining:
                    logger.warning(f"Not retrying after attempt {attempt}: backoff exceeds remaining budget")
                    raise

            logger.warning(
                f"Attempt {attempt}/{config.max_attempts} failed: {e}. "
                f"Retrying in {delay_ms:.0f}ms..."
            )
            if on_retry:
                await on_retry(attempt, e, delay_ms)
            await asyncio.sleep(delay_ms / 1000)
            attempt += 1
