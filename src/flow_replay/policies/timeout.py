"""
Timeout policy: clamping and bounded execution.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from flow_replay.exceptions import ActionTimeoutError

T = TypeVar("T")


@dataclass
class TimeoutConfig:
    """
    Attributes:
        ms: Timeout in milliseconds
        scope: attempt bounds each attempt, action bounds all attempts together
    """
    ms: int
    scope: str = "attempt"


def clamp_timeout(ms: Optional[float], min_ms: int, max_ms: int) -> Optional[int]:
    """Clamp a timeout into ``[min_ms, max_ms]``. None and non-positive values mean no timeout."""
    if ms is None or ms <= 0:
        return None
    return int(min(max(ms, min_ms), max_ms))


def bound_by_budget(timeout_ms: Optional[float], remaining_ms: Optional[float]) -> Optional[float]:
    """The smaller of a timeout and the remaining run budget, either of which may be None."""
    if remaining_ms is None:
        return timeout_ms
    if timeout_ms is None:
        return max(0.0, remaining_ms)
    return max(0.0, min(timeout_ms, remaining_ms))


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_ms: Optional[float],
    error_message: str = "Operation timed out",
    action_type: Optional[str] = None,
) -> Any:
    """
    Await with a timeout in milliseconds.

    Raises:
        ActionTimeoutError: If the timeout is exceeded
    """
    if timeout_ms is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise ActionTimeoutError(f"{error_message} after {int(timeout_ms)}ms", int(timeout_ms), action_type)
