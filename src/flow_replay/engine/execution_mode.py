"""
Execution Mode - which executor runs a given step type.

* legacy: every step through the legacy dispatch table
* actions: every step through the action registry, unsupported types fail
* hybrid: registry for allow-listed types, legacy for the rest and as fallback
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from flow_replay.config.settings import ExecutionSettings

logger = logging.getLogger(__name__)

# Implemented only by the legacy dispatch table
LEGACY_ONLY_TYPES: FrozenSet[str] = frozenset({"triggerEvent", "setAttribute", "loopElements", "executeFlow"})

# Types whose registry handlers match legacy behavior
MIGRATED_ACTION_TYPES: FrozenSet[str] = frozenset({
    "navigate", "click", "dblclick", "fill", "key", "scroll", "drag",
    "wait", "delay", "screenshot", "assert",
})

# Conservative hybrid default: no navigation-sensitive types
MINIMAL_HYBRID_ACTION_TYPES: FrozenSet[str] = frozenset({
    "fill", "key", "scroll", "drag", "wait", "delay", "screenshot", "assert",
})

# Registry handlers exist but have not been verified against legacy behavior
NEEDS_VALIDATION_TYPES: FrozenSet[str] = frozenset({
    "extract", "http", "script", "openTab", "switchTab", "closeTab",
    "handleDownload", "if", "foreach", "while", "switchFrame",
})


@dataclass
class ExecutionModeConfig:
    """
    Attributes:
        mode: legacy, hybrid or actions
        actions_allowlist: None for the minimal hybrid set, empty for all migrated types
        legacy_only_types: Extra types forced onto the legacy path
        log_fallbacks: Log hybrid fallbacks to the run log
        skip_actions_retry: Strip registry retry so the step runner retries once
        skip_actions_nav_wait: Let the step runner own post-action waits
    """
    mode: str = "legacy"
    actions_allowlist: Optional[FrozenSet[str]] = None
    legacy_only_types: FrozenSet[str] = field(default_factory=frozenset)
    log_fallbacks: bool = True
    skip_actions_retry: bool = True
    skip_actions_nav_wait: bool = True

    def __post_init__(self) -> None:
        if self.mode not in ("legacy", "hybrid", "actions"):
            raise ValueError(f"Unknown execution mode: {self.mode}")
        if self.actions_allowlist is not None:
            self.actions_allowlist = frozenset(self.actions_allowlist)
        self.legacy_only_types = frozenset(self.legacy_only_types)
        if self.mode == "hybrid":
            unvalidated = sorted(self.allowed_types & NEEDS_VALIDATION_TYPES)
            if unvalidated:
                logger.warning(f"Hybrid mode routes unvalidated types through the registry: {unvalidated}")

    @classmethod
    def from_settings(cls, settings: ExecutionSettings, mode: Optional[str] = None) -> "ExecutionModeConfig":
        allowlist = settings.actions_allowlist
        return cls(
            mode=mode or settings.mode,
            actions_allowlist=frozenset(allowlist) if allowlist is not None else None,
            legacy_only_types=frozenset(settings.legacy_only_types),
            log_fallbacks=settings.log_fallbacks,
            skip_actions_retry=settings.skip_actions_retry,
            skip_actions_nav_wait=settings.skip_actions_nav_wait,
        )

    @property
    def denied_types(self) -> FrozenSet[str]:
        return LEGACY_ONLY_TYPES | self.legacy_only_types

    @property
    def allowed_types(self) -> FrozenSet[str]:
        if self.actions_allowlist is None:
            return MINIMAL_HYBRID_ACTION_TYPES
        if not self.actions_allowlist:
            return MIGRATED_ACTION_TYPES
        return self.actions_allowlist


def should_use_actions(config: ExecutionModeConfig, step_type: str) -> bool:
    """Whether a step of ``step_type`` should go to the action registry first."""
    if config.mode == "legacy":
        return False
    if config.mode == "actions":
        return True
    if step_type in config.denied_types:
        return False
    return step_type in config.allowed_types


def describe_routing(config: ExecutionModeConfig, types: Iterable[str]) -> dict:
    """Map each type to the executor that would run it."""
    return {t: ("actions" if should_use_actions(config, t) else "legacy") for t in types}
