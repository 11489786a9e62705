"""
Step Executors - legacy, registry-based and hybrid dispatch behind one
interface.

All three return a StepExecutionResult wrapping the same ExecutionResult
shape, so the step runner never needs to know which path ran a step.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from flow_replay.engine.adapter import step_to_action
from flow_replay.engine.context import StepContext
from flow_replay.engine.execution_mode import ExecutionModeConfig, should_use_actions
from flow_replay.engine.legacy_nodes import execute_legacy_step
from flow_replay.exceptions import UnsupportedActionError
from flow_replay.models.results import RunLogEntry, StepExecutionResult
from flow_replay.models.step import Step
from flow_replay.registry import ActionRegistry

logger = logging.getLogger(__name__)


class StepExecutor(ABC):
    """Runs one step and reports which executor handled it."""

    mode: str = ""

    @abstractmethod
    async def execute(self, ctx: StepContext, step: Step) -> StepExecutionResult:
        ...

    def supports(self, step_type: str) -> bool:
        return True


class LegacyStepExecutor(StepExecutor):
    mode = "legacy"

    async def execute(self, ctx: StepContext, step: Step) -> StepExecutionResult:
        result = await execute_legacy_step(ctx, step)
        return StepExecutionResult(result=result, executor="legacy")


class ActionsStepExecutor(StepExecutor):
    """
    Strict registry dispatch.

    Raises:
        UnsupportedActionError: For types without a registry handler
    """

    mode = "actions"

    def __init__(self, registry: ActionRegistry, config: ExecutionModeConfig):
        self.registry = registry
        self.config = config

    def supports(self, step_type: str) -> bool:
        return self.registry.has(step_type)

    async def execute(self, ctx: StepContext, step: Step) -> StepExecutionResult:
        action = step_to_action(step)
        if action is None or not self.registry.has(action.type):
            raise UnsupportedActionError(step.type, f"No registry handler for step type '{step.type}'")

        if self.config.skip_actions_retry and action.policy is not None:
            action.policy.retry = None

        action_ctx = ctx.action_context(step.id, step.timeout_ms, skip_nav_wait=self.config.skip_actions_nav_wait)
        result = await self.registry.execute(action_ctx, action)
        ctx.sync_from(action_ctx)
        return StepExecutionResult(result=result, executor="actions")


class HybridStepExecutor(StepExecutor):
    """Registry for allowed types, legacy for the rest and on unsupported."""

    mode = "hybrid"

    def __init__(self, registry: ActionRegistry, config: ExecutionModeConfig, legacy: Optional[LegacyStepExecutor] = None):
        self.config = config
        self.actions = ActionsStepExecutor(registry, config)
        self.legacy = legacy or LegacyStepExecutor()

    async def execute(self, ctx: StepContext, step: Step) -> StepExecutionResult:
        if not should_use_actions(self.config, step.type):
            return await self.legacy.execute(ctx, step)
        try:
            return await self.actions.execute(ctx, step)
        except UnsupportedActionError as e:
            reason = str(e)
            if self.config.log_fallbacks:
                logger.info(f"Step {step.id}: falling back to legacy ({reason})")
                ctx.logger.push(RunLogEntry(step_id=step.id, status="info", message=f"Fallback to legacy executor: {reason}"))
            outcome = await self.legacy.execute(ctx, step)
            outcome.fallback = True
            outcome.fallback_reason = reason
            return outcome


def create_executor(config: ExecutionModeConfig, registry: Optional[ActionRegistry] = None) -> StepExecutor:
    """
    Build the executor for ``config.mode``.

    Raises:
        ValueError: If a registry-backed mode has no registry
    """
    if config.mode == "legacy":
        return LegacyStepExecutor()
    if registry is None:
        raise ValueError("ActionRegistry required for actions/hybrid execution mode")
    if config.mode == "actions":
        return ActionsStepExecutor(registry, config)
    return HybridStepExecutor(registry, config)
