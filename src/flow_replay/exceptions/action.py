"""
Action-related exceptions.
"""

from enum import Enum
from typing import Optional

from flow_replay.exceptions.base import FlowReplayError


class ErrorCode(str, Enum):
    """Failure codes carried by action results and errors."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TARGET_NOT_FOUND = "TARGET_NOT_FOUND"
    ELEMENT_NOT_VISIBLE = "ELEMENT_NOT_VISIBLE"
    TIMEOUT = "TIMEOUT"
    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    ASSERTION_FAILED = "ASSERTION_FAILED"
    SCRIPT_FAILED = "SCRIPT_FAILED"
    NETWORK_REQUEST_FAILED = "NETWORK_REQUEST_FAILED"
    TAB_NOT_FOUND = "TAB_NOT_FOUND"
    FRAME_NOT_FOUND = "FRAME_NOT_FOUND"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
    UNKNOWN = "UNKNOWN"


class ActionError(FlowReplayError):
    """
    Error while executing an action.

    Attributes:
        code: Failure code
        action_type: Type of the action that failed
        retryable: False when the failure must not be retried
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        action_type: Optional[str] = None,
        retryable: bool = True,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.code = ErrorCode(code)
        self.action_type = action_type
        self.retryable = retryable


class ActionValidationError(ActionError):
    """Action parameters failed validation."""

    def __init__(self, message: str, action_type: Optional[str] = None, details: dict | None = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, action_type, retryable=False, details=details)


class TargetNotFoundError(ActionError):
    """No selector candidate resolved to an element."""

    def __init__(self, message: str = "Target element not found", action_type: Optional[str] = None, details: dict | None = None):
        super().__init__(message, ErrorCode.TARGET_NOT_FOUND, action_type, details=details)


class ActionTimeoutError(ActionError):
    """An action or wait exceeded its time budget."""

    def __init__(self, message: str, timeout_ms: Optional[int] = None, action_type: Optional[str] = None):
        super().__init__(message, ErrorCode.TIMEOUT, action_type, details={"timeout_ms": timeout_ms} if timeout_ms else None)
        self.timeout_ms = timeout_ms


class UnsupportedActionError(ActionError):
    """The action type has no handler in the selected execution mode."""

    def __init__(self, action_type: str, message: Optional[str] = None):
        super().__init__(
            message or f"Unsupported action type: {action_type}",
            ErrorCode.UNSUPPORTED_ACTION,
            action_type,
            retryable=False,
        )


class GlobalTimeoutError(FlowReplayError):
    """The run-wide deadline expired."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Flow global timeout reached after {timeout_ms}ms", {"timeout_ms": timeout_ms})
        self.timeout_ms = timeout_ms
