"""
Step Context - run state threaded through every step of one run.

The orchestrator owns one StepContext per run. Tab and frame identity live
here and are updated in place by tab and frame actions; foreach branches
run on forks with their own variable scope.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from flow_replay.config.settings import EngineSettings
from flow_replay.engine.target_resolver import TargetResolver
from flow_replay.engine.variables import VariableStore
from flow_replay.interfaces.action import ActionExecutionContext, ExecutionFlags
from flow_replay.interfaces.browser import IBrowserControl
from flow_replay.models.results import RunLogEntry

if TYPE_CHECKING:
    from flow_replay.engine.run_logger import RunLogger


@dataclass
class StepContext:
    """
    Attributes:
        browser: Browser collaborator
        vars: Variable store of the run (or of a foreach branch)
        tab_id: Active tab
        frame_id: Active frame, None for the top document
        run_id: Run id
        settings: Engine limits
        resolver: Target resolver bound to the browser
        logger: Run logger receiving structured entries
        remaining_budget_ms: Remaining global budget, None when unbounded
        services: Run services for legacy-only steps (execute_flow, flow_store)
    """
    browser: IBrowserControl
    vars: VariableStore
    tab_id: int
    run_id: str
    settings: EngineSettings
    resolver: TargetResolver
    logger: "RunLogger"
    frame_id: Optional[int] = None
    remaining_budget_ms: Callable[[], Optional[float]] = lambda: None
    services: Dict[str, Any] = field(default_factory=dict)

    def action_context(
        self,
        step_id: str,
        timeout_ms: Optional[int] = None,
        skip_nav_wait: bool = False,
    ) -> ActionExecutionContext:
        """Build the handler-facing context for one step."""

        def log(message: str, level: str = "info") -> None:
            status = "warning" if level in ("warning", "error") else "info"
            self.logger.push(RunLogEntry(step_id=step_id, status=status, message=message))

        return ActionExecutionContext(
            browser=self.browser,
            vars=self.vars,
            tab_id=self.tab_id,
            frame_id=self.frame_id,
            resolver=self.resolver,
            settings=self.settings,
            run_id=self.run_id,
            step_id=step_id,
            timeout_ms=timeout_ms,
            execution=ExecutionFlags(skip_nav_wait=skip_nav_wait),
            log=log,
            push_log=self.logger.push,
            remaining_budget_ms=self.remaining_budget_ms,
            services=self.services,
        )

    def sync_from(self, action_ctx: ActionExecutionContext) -> None:
        """Adopt tab/frame changes made by a handler."""
        self.tab_id = action_ctx.tab_id
        self.frame_id = action_ctx.frame_id

    def fork(self, variables: VariableStore) -> "StepContext":
        return replace(self, vars=variables)
