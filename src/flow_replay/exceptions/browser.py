"""
Browser collaborator exceptions.
"""

from typing import Optional

from flow_replay.exceptions.base import FlowReplayError


class BrowserError(FlowReplayError):
    """Base exception for browser collaborator failures."""
    pass


class RefResolutionError(BrowserError):
    """
    An element reference could not be dereferenced.

    Attributes:
        ref: The reference that failed
        reason: NOT_FOUND when the ref was never issued, EXPIRED when the element is gone
    """

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"

    def __init__(self, ref: str, reason: str = NOT_FOUND):
        super().__init__(f"Element ref {ref} could not be resolved ({reason})", {"ref": ref, "reason": reason})
        self.ref = ref
        self.reason = reason


class TabNotFoundError(BrowserError):
    """The requested tab does not exist."""

    def __init__(self, tab_id: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message or f"Tab not found: {tab_id}", {"tab_id": tab_id})
        self.tab_id = tab_id


class NavigationError(BrowserError):
    """Navigation to a URL failed."""

    def __init__(self, url: str, reason: Optional[str] = None):
        message = f"Navigation to {url} failed"
        if reason:
            message += f": {reason}"
        super().__init__(message, {"url": url, "reason": reason})
        self.url = url
        self.reason = reason


class BrowserLaunchError(BrowserError):
    """The bundled browser could not be started."""
    pass
