"""
Replay settings.

Engine limits, executor routing, run defaults, the Playwright binding and
logging, each as a nested pydantic model under one ``Settings`` root that
also reads ``FLOW_REPLAY__SECTION__KEY`` environment variables.

Example:
    >>> from flow_replay.config import load_config
    >>> load_config(execution={"mode": "hybrid"}).execution.mode
    'hybrid'
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseModel):
    """
    Core engine limits.

    Attributes:
        max_iterations: Orchestrator loop guard
        default_wait_ms: Bound for navigation waits when a step has no timeout
        max_wait_ms: Upper clamp for wait and timeout values
        min_timeout_ms: Lower clamp for step timeouts
        max_timeout_ms: Upper clamp for step timeouts
        default_network_idle_ms: Upper bound of the network idle window
        quick_nav_wait_ms: Window of the post-click navigation sniff
        navigation_poll_ms: Poll interval for navigation and idle waits
        global_timeout_ms: Run-wide deadline, 0 disables it
        max_loop_iterations: Default cap for ``while`` loops
    """
    max_iterations: int = Field(default=1000, ge=1, le=100000)
    default_wait_ms: int = Field(default=10000, ge=0, le=300000)
    max_wait_ms: int = Field(default=120000, ge=0, le=600000)
    min_timeout_ms: int = Field(default=100, ge=0, le=10000)
    max_timeout_ms: int = Field(default=300000, ge=1000, le=3600000)
    default_network_idle_ms: int = Field(default=1500, ge=100, le=60000)
    quick_nav_wait_ms: int = Field(default=1200, ge=0, le=30000)
    navigation_poll_ms: int = Field(default=100, ge=10, le=5000)
    global_timeout_ms: int = Field(default=0, ge=0)
    max_loop_iterations: int = Field(default=1000, ge=1, le=100000)


class ExecutionSettings(BaseModel):
    """
    Step executor selection.

    Attributes:
        mode: legacy, hybrid or actions
        actions_allowlist: Types routed to the registry in hybrid mode (None uses the minimal set)
        legacy_only_types: Extra types that always run on the legacy path
        log_fallbacks: Log when hybrid mode falls back to legacy
        skip_actions_retry: Strip registry retry so the step runner retries once
        skip_actions_nav_wait: Let the step runner own navigation waits
    """
    mode: Literal["legacy", "hybrid", "actions"] = "legacy"
    actions_allowlist: Optional[List[str]] = None
    legacy_only_types: List[str] = Field(default_factory=list)
    log_fallbacks: bool = True
    skip_actions_retry: bool = True
    skip_actions_nav_wait: bool = True


class ReplaySettings(BaseModel):
    """
    Run defaults applied when RunOptions leaves them unset.
    """
    tab_target: Literal["current", "new"] = "current"
    refresh: bool = False
    screenshot_on_failure: bool = True
    return_logs: bool = True
    capture_network: bool = False
    network_summary_limit: int = Field(default=10, ge=0, le=100)


class BrowserSettings(BaseModel):
    """
    Settings for the bundled Playwright collaborator.
    """
    headless: bool = True
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    viewport_width: int = Field(default=1280, ge=320, le=3840)
    viewport_height: int = Field(default=720, ge=240, le=2160)
    slow_mo: int = Field(default=0, ge=0, le=5000)
    downloads_path: Optional[str] = None


class LoggingSettings(BaseModel):
    """
    Logging configuration.

    Attributes:
        level: Log level
        file: Log file path (None for console only)
        json_format: Use JSON format for the log file
    """
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file: Optional[str] = None
    json_format: bool = False


class Settings(BaseSettings):
    """
    All replay settings.

    Constructor values beat ``FLOW_REPLAY__`` environment variables, which beat
    field defaults. ``ConfigLoader`` feeds the YAML file in underneath the
    environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOW_REPLAY__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    engine: EngineSettings = Field(default_factory=EngineSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    replay: ReplaySettings = Field(default_factory=ReplaySettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    storage_dir: Optional[str] = None
    debug: bool = False

    def merge_with(self, overrides: dict) -> "Settings":
        """Copy with nested ``overrides`` merged over the current values."""
        return Settings(**deep_merge(self.model_dump(), overrides))


def deep_merge(base: dict, updates: dict) -> dict:
    """Merge ``updates`` into ``base`` in place, recursing into nested dicts."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base
