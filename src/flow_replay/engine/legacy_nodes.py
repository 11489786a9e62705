"""
Legacy Nodes - the direct dispatch table of the legacy executor.

Every step type has an entry. Types shared with the registry reuse the
built-in handler objects, called directly without registry policy; the step
runner applies retry and waits. triggerEvent, setAttribute, loopElements and
executeFlow exist only here.
"""

import logging
from typing import Any, Dict, Optional

from flow_replay.engine.adapter import convert_step_to_action
from flow_replay.engine.context import StepContext
from flow_replay.exceptions import ActionError, ErrorCode, TargetNotFoundError
from flow_replay.interfaces.action import (
    ActionExecutionContext,
    ActionHandler,
    ActionType,
    BaseActionHandler,
    ValidationResult,
    has_target,
)
from flow_replay.models.flow import Action
from flow_replay.models.results import ControlDirective, ExecutionResult
from flow_replay.models.step import Step

logger = logging.getLogger(__name__)


class TriggerEventHandler(BaseActionHandler):
    """Dispatch a DOM event on an element."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.TRIGGER_EVENT

    @property
    def description(self) -> str:
        return "Trigger a DOM event"

    def validate(self, action: Action) -> ValidationResult:
        if not has_target(action.params):
            return ValidationResult.failed("triggerEvent requires a target")
        return self.require(action.params, "event")

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        located = await self.locate(ctx, params["target"], require_visible=False)
        init = {
            "bubbles": params.get("bubbles", True),
            "cancelable": params.get("cancelable", True),
            **(params.get("init") or {}),
        }
        await ctx.browser.dispatch_event(ctx.tab_id, located.ref, str(params["event"]), init, ctx.frame_id)
        return ExecutionResult.ok()


class SetAttributeHandler(BaseActionHandler):
    """Set or remove an element attribute."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.SET_ATTRIBUTE

    @property
    def description(self) -> str:
        return "Set an attribute"

    def validate(self, action: Action) -> ValidationResult:
        if not has_target(action.params):
            return ValidationResult.failed("setAttribute requires a target")
        return self.require(action.params, "name")

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        located = await self.locate(ctx, params["target"], require_visible=False)
        value = None if params.get("remove") else str(params.get("value", ""))
        await ctx.browser.set_attribute(ctx.tab_id, located.ref, str(params["name"]), value, ctx.frame_id)
        return ExecutionResult.ok()


class LoopElementsHandler(BaseActionHandler):
    """
    Collect every element matching a selector into a list variable and loop
    a subflow over it.

    Each item is ``{"ref", "text", "index", "selector"}`` so subflow steps can
    target ``{"ref": "{{element.ref}}"}``.
    """

    @property
    def action_type(self) -> ActionType:
        return ActionType.LOOP_ELEMENTS

    @property
    def description(self) -> str:
        return "Loop over matching elements"

    def validate(self, action: Action) -> ValidationResult:
        return self.require(action.params, "selector", "subflowId")

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        selector = str(params["selector"])
        matches = await ctx.browser.query(ctx.tab_id, selector, ctx.frame_id, xpath=bool(params.get("xpath")))
        matches = [m for m in matches if m.visible or params.get("includeHidden")]
        limit = params.get("limit")
        if limit is not None:
            matches = matches[: int(limit)]
        if not matches and params.get("failIfEmpty"):
            raise TargetNotFoundError(f"No elements match {selector}", self.action_type.value)

        list_var = str(params.get("listVar") or "elements")
        ctx.vars[list_var] = [
            {"ref": m.ref, "text": m.text, "index": i, "selector": m.selector or selector}
            for i, m in enumerate(matches)
        ]
        directive = ControlDirective(
            kind="foreach",
            subflow_id=str(params["subflowId"]),
            list_var=list_var,
            item_var=str(params.get("itemVar") or "element"),
            concurrency=1,
        )
        return ExecutionResult.ok(output={"count": len(matches)}, control=directive)


class ExecuteFlowHandler(BaseActionHandler):
    """
    Run another stored flow.

    Inline (default) runs share this run's variables; ``isolate: true`` runs
    with only ``args``. The callee's outputs can be stored with ``saveAs``.
    """

    @property
    def action_type(self) -> ActionType:
        return ActionType.EXECUTE_FLOW

    @property
    def description(self) -> str:
        return "Execute another flow"

    def validate(self, action: Action) -> ValidationResult:
        return self.require(action.params, "flowId")

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        execute_flow = ctx.services.get("execute_flow")
        if execute_flow is None:
            raise ActionError("executeFlow needs a flow store", ErrorCode.VALIDATION_ERROR, self.action_type.value, retryable=False)
        flow_id = str(params["flowId"])
        result = await execute_flow(flow_id, params.get("args") or {}, bool(params.get("isolate")), ctx)
        if not result.success:
            raise ActionError(f"Flow {flow_id} failed", ErrorCode.UNKNOWN, self.action_type.value, retryable=False)
        if params.get("saveAs"):
            ctx.vars.set_path(str(params["saveAs"]), result.outputs)
        return ExecutionResult.ok(output=result.outputs)


def _build_dispatch_table() -> Dict[str, ActionHandler]:
    from flow_replay.registry import create_replay_action_registry

    registry = create_replay_action_registry()
    table: Dict[str, ActionHandler] = {t: registry.get(t) for t in registry.list_types()}
    for handler in (TriggerEventHandler(), SetAttributeHandler(), LoopElementsHandler(), ExecuteFlowHandler()):
        table[handler.action_type.value] = handler
    return table


_DISPATCH: Optional[Dict[str, ActionHandler]] = None


def dispatch_table() -> Dict[str, ActionHandler]:
    global _DISPATCH
    if _DISPATCH is None:
        _DISPATCH = _build_dispatch_table()
    return _DISPATCH


def supported_legacy_types() -> list:
    return sorted(dispatch_table())


async def execute_legacy_step(ctx: StepContext, step: Step) -> ExecutionResult:
    """
    Run one step through the legacy dispatch table.

    Post-action waits are left to the step runner.
    """
    handler = dispatch_table().get(step.type)
    if handler is None:
        return ExecutionResult.failed(ErrorCode.VALIDATION_ERROR, f"Unknown step type: {step.type}", retryable=False)

    action = convert_step_to_action(step)
    validation = handler.validate(action)
    if not validation.ok:
        return ExecutionResult.failed(ErrorCode.VALIDATION_ERROR, "; ".join(validation.errors), retryable=False)

    action_ctx = ctx.action_context(step.id, step.timeout_ms, skip_nav_wait=True)
    result = await handler.run(action_ctx, action)
    ctx.sync_from(action_ctx)
    return result
