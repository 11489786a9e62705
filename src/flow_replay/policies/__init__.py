"""
Policy layer: retry, timeout, post-action waits and error routing.
"""

from flow_replay.policies.retry import RetryConfig, compute_delay_ms, is_retryable, retry_async
from flow_replay.policies.timeout import TimeoutConfig, clamp_timeout, bound_by_budget, with_timeout
from flow_replay.policies.wait import (
    network_idle_window_ms,
    wait_for_navigation_done,
    wait_for_network_idle,
    maybe_wait_for_navigation,
    apply_post_action_wait,
)
from flow_replay.policies.on_error import OnErrorDecision, resolve_on_error

__all__ = [
    "RetryConfig",
    "compute_delay_ms",
    "is_retryable",
    "retry_async",
    "TimeoutConfig",
    "clamp_timeout",
    "bound_by_budget",
    "with_timeout",
    "network_idle_window_ms",
    "wait_for_navigation_done",
    "wait_for_network_idle",
    "maybe_wait_for_navigation",
    "apply_post_action_wait",
    "OnErrorDecision",
    "resolve_on_error",
]
