"""
Step Runner - executes one step under the policy layer.

Wraps the step executor with, in order:
- plugin ``before_step`` (pause or skip)
- timeout (per attempt or per action) bounded by the run budget
- retry with backoff, logging a ``retrying`` entry per retry
- the post-action navigation/network-idle wait
- success/failure log entries, failure screenshot and ``on_error`` hook
- the deferred after-script queue

The runner never decides where the run goes next; it reports a StepOutcome
and the orchestrator routes on it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from flow_replay.config.settings import ReplaySettings
from flow_replay.engine.after_scripts import AfterScriptQueue
from flow_replay.engine.context import StepContext
from flow_replay.engine.execution_mode import ExecutionModeConfig
from flow_replay.engine.plugins import PluginManager
from flow_replay.engine.step_executor import StepExecutor
from flow_replay.exceptions import ActionError, FlowReplayError, GlobalTimeoutError
from flow_replay.models.results import ControlDirective, ExecutionResult, RunLogEntry, StepExecutionResult
from flow_replay.models.step import Step
from flow_replay.policies.on_error import OnErrorDecision, resolve_on_error
from flow_replay.policies.retry import RetryConfig, retry_async
from flow_replay.policies.timeout import bound_by_budget, clamp_timeout, with_timeout
from flow_replay.policies.wait import ALWAYS_NAV_WAIT_TYPES, NAV_WAIT_TYPES, apply_post_action_wait

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """
    What happened to one step.

    Attributes:
        status: success, failed, paused or skipped
        result: Final ExecutionResult when the executor produced one
        next_label: Label suggested by the result
        control: Loop directive for the control-flow runner
        error: Failure message
        on_error: How the orchestrator should route a failure
        executor: legacy or actions
        took_ms: Wall time including retries and waits
    """
    status: str
    result: Optional[ExecutionResult] = None
    next_label: Optional[str] = None
    control: Optional[ControlDirective] = None
    error: Optional[str] = None
    on_error: OnErrorDecision = field(default_factory=OnErrorDecision)
    executor: Optional[str] = None
    took_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == "success"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def paused(self) -> bool:
        return self.status == "paused"


def _error_message(error: BaseException) -> str:
    if isinstance(error, FlowReplayError):
        return error.message
    return str(error) or type(error).__name__


class StepRunner:
    """
    Example:
        >>> runner = StepRunner(create_executor(config, registry), PluginManager(), AfterScriptQueue(), config)
        >>> outcome = await runner.run(ctx, step)
        >>> outcome.status
        'success'
    """

    def __init__(
        self,
        executor: StepExecutor,
        plugins: PluginManager,
        after_scripts: AfterScriptQueue,
        config: ExecutionModeConfig,
        replay: Optional[ReplaySettings] = None,
    ):
        self.executor = executor
        self.plugins = plugins
        self.after_scripts = after_scripts
        self.config = config
        self.replay = replay or ReplaySettings()

    def _runner_owns_wait(self, outcome: StepExecutionResult) -> bool:
        """Registry handlers wait themselves unless told to leave it to the runner."""
        return not (outcome.executor == "actions" and not self.config.skip_actions_nav_wait)

    async def _current_url(self, ctx: StepContext) -> Optional[str]:
        tab = await ctx.browser.get_tab(ctx.tab_id)
        return tab.url if tab is not None else None

    async def run(self, ctx: StepContext, step: Step) -> StepOutcome:
        start_time = time.perf_counter()

        control = await self.plugins.before_step(ctx.run_id, step, ctx.vars)
        if control.pause:
            ctx.logger.push(RunLogEntry(step_id=step.id, status="paused", message="Paused before step"))
            return StepOutcome(status="paused")
        if control.skip or step.disabled:
            reason = "disabled" if step.disabled else "skipped by plugin"
            ctx.logger.push(RunLogEntry(step_id=step.id, status="skipped", message=reason))
            return StepOutcome(status="skipped", result=ExecutionResult.skipped(reason))

        engine = ctx.settings
        before_url = await self._current_url(ctx)
        timeout_ms = clamp_timeout(step.timeout_ms, engine.min_timeout_ms, engine.max_timeout_ms)
        scope = step.timeout_scope or "attempt"
        retry_config = RetryConfig.from_policy(step.retry)
        last: dict = {}

        async def attempt(number: int) -> ExecutionResult:
            remaining = ctx.remaining_budget_ms()
            if remaining is not None and remaining <= 0:
                raise GlobalTimeoutError(engine.global_timeout_ms)
            if scope == "attempt":
                bound = bound_by_budget(timeout_ms, remaining)
                return await with_timeout(self._attempt(ctx, step, before_url, last), bound, f"Step {step.id} timed out", step.type)
            return await self._attempt(ctx, step, before_url, last)

        async def on_retry(number: int, error: Exception, delay_ms: float) -> None:
            ctx.logger.retrying(
                step.id,
                f"{_error_message(error)} (attempt {number}/{retry_config.max_attempts}, next in {delay_ms:.0f}ms)",
            )
            await self.plugins.on_retry(ctx.run_id, step, number, error)
            await ctx.logger.flush()

        try:
            attempts = retry_async(attempt, retry_config, on_retry, ctx.remaining_budget_ms)
            if scope == "action" and timeout_ms is not None:
                bound = bound_by_budget(timeout_ms, ctx.remaining_budget_ms())
                result = await with_timeout(attempts, bound, f"Step {step.id} timed out", step.type)
            else:
                result = await attempts
        except Exception as e:
            return await self._fail(ctx, step, e, start_time, last.get("outcome"))

        took_ms = (time.perf_counter() - start_time) * 1000
        outcome: StepExecutionResult = last["outcome"]
        if not result.metadata.get("already_logged"):
            ctx.logger.success(step.id, took_ms=took_ms)
        await self.plugins.after_step(ctx.run_id, step, result)
        await ctx.logger.overlay_append(f"✔ {step.type} ({step.id})")

        await self.after_scripts.flush(ctx)
        deferred = result.metadata.get("deferred_script")
        if deferred:
            self.after_scripts.enqueue(deferred)
        await ctx.logger.flush()

        return StepOutcome(
            status="success",
            result=result,
            next_label=result.next_label,
            control=result.control,
            executor=outcome.executor,
            took_ms=took_ms,
        )

    async def _attempt(self, ctx: StepContext, step: Step, before_url: Optional[str], last: dict) -> ExecutionResult:
        outcome = await self.executor.execute(ctx, step)
        last["outcome"] = outcome
        result = outcome.result
        if not result.success:
            error = result.error
            if error is None:
                raise ActionError(f"Step {step.id} returned {result.status.value}", action_type=step.type)
            raise ActionError(error.message, error.code, step.type, error.retryable)

        if step.type in NAV_WAIT_TYPES or step.type in ALWAYS_NAV_WAIT_TYPES:
            if self._runner_owns_wait(outcome):
                await self._post_action_wait(ctx, step, before_url)
        return result

    async def _post_action_wait(self, ctx: StepContext, step: Step, before_url: Optional[str]) -> None:
        engine = ctx.settings
        requested = min(step.timeout_ms or engine.default_wait_ms, engine.max_wait_ms)
        wait_ms = bound_by_budget(requested, ctx.remaining_budget_ms())
        await apply_post_action_wait(
            ctx.browser,
            step.type,
            step.params,
            ctx.tab_id,
            before_url,
            wait_ms,
            max_idle_ms=engine.default_network_idle_ms,
            quick_window_ms=engine.quick_nav_wait_ms,
            poll_ms=engine.navigation_poll_ms,
        )

    async def _fail(
        self,
        ctx: StepContext,
        step: Step,
        error: Exception,
        start_time: float,
        outcome: Optional[StepExecutionResult],
    ) -> StepOutcome:
        took_ms = (time.perf_counter() - start_time) * 1000
        message = _error_message(error)
        decision = resolve_on_error(step.on_error)

        screenshot = None
        wants_screenshot = step.screenshot_on_fail
        if wants_screenshot is None:
            wants_screenshot = self.replay.screenshot_on_failure
        if wants_screenshot and decision.kind != "continue":
            try:
                screenshot = await ctx.browser.screenshot(ctx.tab_id)
            except Exception as e:
                logger.warning(f"Failure screenshot for {step.id} unavailable: {e}")

        executor = outcome.executor if outcome else None
        if decision.kind == "continue" and decision.level != "error":
            ctx.logger.push(RunLogEntry(step_id=step.id, status=decision.level, message=message, took_ms=took_ms))
            await ctx.logger.overlay_append(f"⚠ {step.type} ({step.id}) -> {message}")
            await ctx.logger.flush()
            return StepOutcome(status="success", error=message, on_error=decision, executor=executor, took_ms=took_ms)

        ctx.logger.failed(step.id, message, took_ms=took_ms, screenshot_base64=screenshot)
        await ctx.logger.overlay_append(f"✘ {step.type} ({step.id}) -> {message}")

        hook = await self.plugins.on_error(ctx.run_id, step, error)
        await ctx.logger.flush()
        if hook.pause:
            return StepOutcome(status="paused", error=message, on_error=decision, executor=executor, took_ms=took_ms)
        return StepOutcome(status="failed", error=message, on_error=decision, executor=executor, took_ms=took_ms)
