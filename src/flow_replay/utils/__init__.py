"""
Utility helpers.
"""

from flow_replay.utils.logging import setup_logging, JsonLineFormatter
from flow_replay.utils.templates import resolve_template, resolve_deep, get_by_path, set_by_path

__all__ = [
    "setup_logging",
    "JsonLineFormatter",
    "resolve_template",
    "resolve_deep",
    "get_by_path",
    "set_by_path",
]
