"""
Browsers module - browser bindings for the engine.
"""

from flow_replay.browsers.playwright_browser import PlaywrightBrowserControl

__all__ = [
    "PlaywrightBrowserControl",
]
