"""
Base exceptions for Flow Replay.
"""


class FlowReplayError(Exception):
    """
    Base exception for all Flow Replay errors.

    Attributes:
        message: Human-readable error message
        details: Optional additional error details
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(FlowReplayError):
    """
    Error in configuration.

    Raised when there's an issue with settings, environment variables,
    or configuration files.
    """
    pass
