"""
Configuration module - Centralized settings management.

Usage:
    from flow_replay.config import get_settings, load_config

    settings = get_settings()
    settings = load_config(execution={"mode": "hybrid"})

Environment Variables:
    FLOW_REPLAY__EXECUTION__MODE=hybrid
    FLOW_REPLAY__ENGINE__GLOBAL_TIMEOUT_MS=60000
    FLOW_REPLAY__BROWSER__HEADLESS=false
"""

from flow_replay.config.settings import (
    Settings,
    EngineSettings,
    ExecutionSettings,
    ReplaySettings,
    BrowserSettings,
    LoggingSettings,
)
from flow_replay.config.loader import ConfigLoader, load_config

_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Call reset_settings() to reload.
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def reset_settings() -> None:
    """Reset the global settings (forces reload on next get_settings())."""
    global _settings
    _settings = None


__all__ = [
    "Settings",
    "EngineSettings",
    "ExecutionSettings",
    "ReplaySettings",
    "BrowserSettings",
    "LoggingSettings",
    "ConfigLoader",
    "load_config",
    "get_settings",
    "reset_settings",
]
