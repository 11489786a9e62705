"""
Flow Replay exception hierarchy.
"""

from flow_replay.exceptions.base import FlowReplayError, ConfigurationError
from flow_replay.exceptions.flow import FlowValidationError, DagError
from flow_replay.exceptions.action import (
    ErrorCode,
    ActionError,
    ActionValidationError,
    TargetNotFoundError,
    ActionTimeoutError,
    UnsupportedActionError,
    GlobalTimeoutError,
)
from flow_replay.exceptions.browser import (
    BrowserError,
    BrowserLaunchError,
    RefResolutionError,
    TabNotFoundError,
    NavigationError,
)

__all__ = [
    "FlowReplayError",
    "ConfigurationError",
    "FlowValidationError",
    "DagError",
    "ErrorCode",
    "ActionError",
    "ActionValidationError",
    "TargetNotFoundError",
    "ActionTimeoutError",
    "UnsupportedActionError",
    "GlobalTimeoutError",
    "BrowserError",
    "BrowserLaunchError",
    "RefResolutionError",
    "TabNotFoundError",
    "NavigationError",
]
