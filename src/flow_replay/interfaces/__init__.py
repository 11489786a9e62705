"""
Interfaces module - contracts between the engine and its collaborators.

The browser contract is what a binding implements; the action contract is
what registry handlers implement.
"""

from flow_replay.interfaces.browser import (
    IBrowserControl,
    TabInfo,
    FrameInfo,
    ElementMatch,
    ElementRef,
)
from flow_replay.interfaces.action import (
    ActionType,
    ActionHandler,
    BaseActionHandler,
    ActionExecutionContext,
    ExecutionFlags,
    ValidationResult,
)

__all__ = [
    # Browser
    "IBrowserControl",
    "TabInfo",
    "FrameInfo",
    "ElementMatch",
    "ElementRef",
    # Actions
    "ActionType",
    "ActionHandler",
    "BaseActionHandler",
    "ActionExecutionContext",
    "ExecutionFlags",
    "ValidationResult",
]
