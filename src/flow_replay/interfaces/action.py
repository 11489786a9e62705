"""
Action Interface - the contract every action handler implements.

Each action type (click, fill, navigate, ...) has one handler with three
operations: ``validate``, ``describe`` and ``run``. Handlers receive an
ActionExecutionContext exposing the variable store, the active tab/frame
identity, a log sink and the browser collaborator.

Example:
    >>> handler = ClickHandler()
    >>> result = await handler.run(ctx, action)
    >>> result.success
    True
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING

from flow_replay.exceptions import (
    ActionError,
    ErrorCode,
    FlowReplayError,
    NavigationError,
    RefResolutionError,
    TabNotFoundError,
    TargetNotFoundError,
)
from flow_replay.models.flow import Action
from flow_replay.models.results import ExecutionResult, RunLogEntry

if TYPE_CHECKING:
    from flow_replay.config.settings import EngineSettings
    from flow_replay.engine.target_resolver import LocatedElement, TargetResolver
    from flow_replay.engine.variables import VariableStore
    from flow_replay.interfaces.browser import IBrowserControl

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    """The closed set of action types."""
    # Interaction
    CLICK = "click"
    DBLCLICK = "dblclick"
    FILL = "fill"
    KEY = "key"
    SCROLL = "scroll"
    DRAG = "drag"

    # Navigation and tabs
    NAVIGATE = "navigate"
    OPEN_TAB = "openTab"
    SWITCH_TAB = "switchTab"
    CLOSE_TAB = "closeTab"
    SWITCH_FRAME = "switchFrame"
    HANDLE_DOWNLOAD = "handleDownload"

    # Synchronization
    WAIT = "wait"
    DELAY = "delay"
    ASSERT = "assert"

    # Data
    EXTRACT = "extract"
    SCRIPT = "script"
    HTTP = "http"
    SCREENSHOT = "screenshot"

    # Control flow
    IF = "if"
    FOREACH = "foreach"
    WHILE = "while"

    # Legacy dispatch only
    TRIGGER_EVENT = "triggerEvent"
    SET_ATTRIBUTE = "setAttribute"
    LOOP_ELEMENTS = "loopElements"
    EXECUTE_FLOW = "executeFlow"


@dataclass
class ValidationResult:
    ok: bool = True
    errors: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls, *errors: str) -> "ValidationResult":
        return cls(ok=False, errors=list(errors))


@dataclass
class ExecutionFlags:
    """
    Attributes:
        skip_nav_wait: The step runner owns post-action navigation waits
    """
    skip_nav_wait: bool = False


@dataclass
class ActionExecutionContext:
    """
    Everything a handler may touch while running.

    Handlers update ``tab_id`` and ``frame_id`` in place when they switch
    tabs or frames; the caller copies them back into the run state.
    """
    browser: "IBrowserControl"
    vars: "VariableStore"
    tab_id: int
    resolver: "TargetResolver"
    settings: "EngineSettings"
    frame_id: Optional[int] = None
    run_id: str = ""
    step_id: str = ""
    timeout_ms: Optional[int] = None
    execution: ExecutionFlags = field(default_factory=ExecutionFlags)
    log: Optional[Callable[[str, str], None]] = None
    push_log: Optional[Callable[[RunLogEntry], None]] = None
    remaining_budget_ms: Callable[[], Optional[float]] = lambda: None
    services: Dict[str, Any] = field(default_factory=dict)

    def emit(self, message: str, level: str = "info") -> None:
        """Send a message to the run log sink and the module logger."""
        logger.log(logging.WARNING if level == "warning" else logging.INFO, f"[{self.step_id}] {message}")
        if self.log:
            self.log(message, level)

    def wait_budget_ms(self, requested_ms: Optional[float] = None) -> float:
        """A wait bound: the requested or step timeout, cut down to the remaining run budget."""
        wait = requested_ms or self.timeout_ms or self.settings.default_wait_ms
        wait = min(float(wait), float(self.settings.max_wait_ms))
        remaining = self.remaining_budget_ms()
        if remaining is not None:
            wait = min(wait, max(0.0, remaining))
        return wait


class ActionHandler(ABC):
    """
    Abstract interface for action handlers.
    """

    @property
    @abstractmethod
    def action_type(self) -> ActionType:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    def validate(self, action: Action) -> ValidationResult:
        return ValidationResult()

    def describe(self, action: Action) -> str:
        return self.description

    @abstractmethod
    async def run(self, ctx: ActionExecutionContext, action: Action) -> ExecutionResult:
        ...


class BaseActionHandler(ActionHandler):
    """
    Base handler with timing, template resolution and error mapping.

    Subclasses implement ``_run(ctx, action, params)`` where ``params`` has
    variable templates already substituted, and raise ActionError on failure.
    """

    resolve_templates = True

    async def run(self, ctx: ActionExecutionContext, action: Action) -> ExecutionResult:
        start_time = time.perf_counter()
        try:
            params = ctx.vars.resolve_deep(action.params) if self.resolve_templates else dict(action.params)
            result = await self._run(ctx, action, params)
        except ActionError as e:
            result = ExecutionResult.failed(e.code, e.message, e.retryable)
        except RefResolutionError as e:
            result = ExecutionResult.failed(ErrorCode.TARGET_NOT_FOUND, e.message)
        except TabNotFoundError as e:
            result = ExecutionResult.failed(ErrorCode.TAB_NOT_FOUND, e.message)
        except NavigationError as e:
            result = ExecutionResult.failed(ErrorCode.NAVIGATION_FAILED, e.message)
        except FlowReplayError as e:
            result = ExecutionResult.failed(ErrorCode.UNKNOWN, str(e))
        except Exception as e:
            logger.exception(f"{self.action_type.value} handler raised unexpectedly")
            result = ExecutionResult.failed(ErrorCode.UNKNOWN, f"{type(e).__name__}: {e}")
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result

    @abstractmethod
    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        ...

    # Shared helpers

    async def locate(
        self,
        ctx: ActionExecutionContext,
        target: Optional[Mapping[str, Any]],
        require_visible: bool = True,
    ) -> "LocatedElement":
        """
        Resolve a target or raise TargetNotFoundError.

        Emits a fallback log entry when a later strategy won.
        """
        located = await ctx.resolver.locate(ctx.tab_id, target, ctx.frame_id, ctx.vars)
        if located is None:
            raise TargetNotFoundError(f"Target not found for {self.action_type.value}", self.action_type.value)
        if require_visible and not located.match.visible:
            raise ActionError("Target element is not visible", ErrorCode.ELEMENT_NOT_VISIBLE, self.action_type.value)
        if located.fallback_used and ctx.push_log:
            ctx.push_log(RunLogEntry(
                step_id=ctx.step_id,
                status="info",
                message=f"Selector fallback: {located.fallback_from} -> {located.resolved_by}",
                fallback_used=True,
                fallback_from=located.fallback_from,
                fallback_to=located.resolved_by,
            ))
        return located

    def require(self, params: Mapping[str, Any], *keys: str) -> ValidationResult:
        missing = [k for k in keys if params.get(k) in (None, "")]
        if missing:
            return ValidationResult.failed(*(f"{self.action_type.value} requires '{k}'" for k in missing))
        return ValidationResult()


def has_target(params: Mapping[str, Any], key: str = "target") -> bool:
    target = params.get(key)
    return bool(target) and bool(target.get("ref") or target.get("candidates") or target.get("selector"))
