"""
Plugins - hooks observing and steering a run.

Hooks are async and optional. ``before_step`` and ``on_error`` may pause the
run; ``before_step`` may also skip a step; ``on_choose_next_label`` may
override the edge label. A hook that raises is logged as a warning and
ignored.

Example:
    >>> class Audit(RunPlugin):
    ...     name = "audit"
    ...     async def after_step(self, run_id, step, result):
    ...         print(step.id, result.status)
    >>> await run_flow(flow, browser, RunOptions(plugins=[Audit()]))
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Set, TYPE_CHECKING

from flow_replay.models.results import ExecutionResult, RunResult
from flow_replay.models.step import Step

if TYPE_CHECKING:
    from flow_replay.engine.run_logger import RunLogger

logger = logging.getLogger(__name__)


@dataclass
class HookControl:
    """
    Attributes:
        pause: Halt the run in paused state
        skip: Skip the step without executing it
    """
    pause: bool = False
    skip: bool = False


class RunPlugin:
    """Base plugin with no-op hooks."""

    name: str = "plugin"

    async def on_run_start(self, run_id: str, flow_id: str, variables: Any) -> None:
        return None

    async def before_step(self, run_id: str, step: Step, variables: Any) -> Optional[HookControl]:
        return None

    async def after_step(self, run_id: str, step: Step, result: ExecutionResult) -> None:
        return None

    async def on_retry(self, run_id: str, step: Step, attempt: int, error: Exception) -> None:
        return None

    async def on_error(self, run_id: str, step: Step, error: Exception) -> Optional[HookControl]:
        return None

    async def on_choose_next_label(self, run_id: str, step: Step, result: ExecutionResult, label: str) -> Optional[str]:
        return None

    async def on_run_end(self, run_id: str, result: RunResult) -> None:
        return None


class BreakpointPlugin(RunPlugin):
    """
    Pause before configured step ids.

    Each breakpoint fires once per plugin instance, so resuming at the
    paused node with the same plugin continues past it.
    """

    name = "breakpoints"

    def __init__(self, step_ids: Iterable[str]):
        self.step_ids: Set[str] = set(step_ids)
        self._hit: Set[str] = set()

    async def before_step(self, run_id: str, step: Step, variables: Any) -> Optional[HookControl]:
        if step.id in self.step_ids and step.id not in self._hit:
            self._hit.add(step.id)
            logger.info(f"Breakpoint hit at {step.id}")
            return HookControl(pause=True)
        return None


class PluginManager:
    """
    Calls every plugin's hook in registration order.

    Hook failures become warning entries in the run log when a RunLogger is
    attached, and module-level warnings otherwise.
    """

    def __init__(self, plugins: Optional[List[RunPlugin]] = None, run_logger: Optional["RunLogger"] = None):
        self.plugins: List[RunPlugin] = list(plugins or [])
        self.run_logger = run_logger

    def add(self, plugin: RunPlugin) -> None:
        self.plugins.append(plugin)

    async def _call(self, plugin: RunPlugin, hook: str, step_id: str, *args: Any) -> Any:
        try:
            return await getattr(plugin, hook)(*args)
        except Exception as e:
            message = f"plugin {plugin.name}.{hook} error: {e}"
            if self.run_logger is not None:
                self.run_logger.warning(step_id, message)
            else:
                logger.warning(message)
            return None

    async def on_run_start(self, run_id: str, flow_id: str, variables: Any) -> None:
        for plugin in self.plugins:
            await self._call(plugin, "on_run_start", "plugin", run_id, flow_id, variables)

    async def before_step(self, run_id: str, step: Step, variables: Any) -> HookControl:
        control = HookControl()
        for plugin in self.plugins:
            result = await self._call(plugin, "before_step", step.id, run_id, step, variables)
            if result is not None:
                control.pause = control.pause or result.pause
                control.skip = control.skip or result.skip
        return control

    async def after_step(self, run_id: str, step: Step, result: ExecutionResult) -> None:
        for plugin in self.plugins:
            await self._call(plugin, "after_step", step.id, run_id, step, result)

    async def on_retry(self, run_id: str, step: Step, attempt: int, error: Exception) -> None:
        for plugin in self.plugins:
            await self._call(plugin, "on_retry", step.id, run_id, step, attempt, error)

    async def on_error(self, run_id: str, step: Step, error: Exception) -> HookControl:
        control = HookControl()
        for plugin in self.plugins:
            result = await self._call(plugin, "on_error", step.id, run_id, step, error)
            if result is not None and result.pause:
                control.pause = True
        return control

    async def choose_next_label(self, run_id: str, step: Step, result: ExecutionResult, label: str) -> str:
        """The last plugin returning a label wins."""
        for plugin in self.plugins:
            override = await self._call(plugin, "on_choose_next_label", step.id, run_id, step, result, label)
            if override:
                label = str(override)
        return label

    async def on_run_end(self, run_id: str, result: RunResult) -> None:
        for plugin in self.plugins:
            await self._call(plugin, "on_run_end", "plugin", run_id, result)
