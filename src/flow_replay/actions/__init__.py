"""
Actions module - built-in action handlers.

Importing this package registers every handler with the registry.
"""

from flow_replay.actions.interaction import (
    ClickHandler,
    DoubleClickHandler,
    FillHandler,
    KeyHandler,
    ScrollHandler,
    DragHandler,
)
from flow_replay.actions.navigation import (
    NavigateHandler,
    OpenTabHandler,
    SwitchTabHandler,
    CloseTabHandler,
    SwitchFrameHandler,
    HandleDownloadHandler,
)
from flow_replay.actions.synchronization import WaitHandler, DelayHandler, AssertHandler
from flow_replay.actions.data import ExtractHandler, ScriptHandler, HttpHandler, ScreenshotHandler
from flow_replay.actions.control import IfHandler, ForeachHandler, WhileHandler

__all__ = [
    # Interaction
    "ClickHandler",
    "DoubleClickHandler",
    "FillHandler",
    "KeyHandler",
    "ScrollHandler",
    "DragHandler",
    # Navigation
    "NavigateHandler",
    "OpenTabHandler",
    "SwitchTabHandler",
    "CloseTabHandler",
    "SwitchFrameHandler",
    "HandleDownloadHandler",
    # Synchronization
    "WaitHandler",
    "DelayHandler",
    "AssertHandler",
    # Data
    "ExtractHandler",
    "ScriptHandler",
    "HttpHandler",
    "ScreenshotHandler",
    # Control
    "IfHandler",
    "ForeachHandler",
    "WhileHandler",
]
