"""
Control Actions - if, foreach and while.

``if`` returns the edge label to follow. ``foreach`` and ``while`` return a
ControlDirective that the control-flow runner executes.
"""

from typing import Any, Dict

from flow_replay.engine.conditions import evaluate_condition
from flow_replay.exceptions import ActionValidationError
from flow_replay.interfaces.action import (
    ActionExecutionContext,
    ActionType,
    BaseActionHandler,
    ValidationResult,
)
from flow_replay.models.flow import Action, DEFAULT_LABEL, FALSE_LABEL, TRUE_LABEL
from flow_replay.models.results import ControlDirective, ExecutionResult
from flow_replay.registry import register_action


def choose_if_label(params: Dict[str, Any], variables) -> str:
    """
    Pick the outgoing label for an ``if`` node.

    Binary mode: ``trueLabel`` (default ``true``) or ``falseLabel`` (default
    ``false``). Branches mode: the first branch whose condition holds, then
    ``elseLabel``, then ``default``.
    """
    branches = params.get("branches")
    if branches:
        for branch in branches:
            if evaluate_condition(branch.get("condition"), variables):
                return str(branch.get("label") or DEFAULT_LABEL)
        return str(params.get("elseLabel") or DEFAULT_LABEL)

    if evaluate_condition(params.get("condition"), variables):
        return str(params.get("trueLabel") or TRUE_LABEL)
    return str(params.get("falseLabel") or FALSE_LABEL)


@register_action(ActionType.IF)
class IfHandler(BaseActionHandler):
    """Branch on a condition."""

    resolve_templates = False

    @property
    def action_type(self) -> ActionType:
        return ActionType.IF

    @property
    def description(self) -> str:
        return "Branch on a condition"

    def validate(self, action: Action) -> ValidationResult:
        params = action.params
        if params.get("branches"):
            bad = [i for i, b in enumerate(params["branches"]) if not isinstance(b, dict) or "condition" not in b]
            if bad:
                return ValidationResult.failed(f"if branches {bad} have no condition")
            return ValidationResult()
        if params.get("condition") is None and params.get("expression") is None:
            return ValidationResult.failed("if requires 'condition' or 'branches'")
        return ValidationResult()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        if params.get("condition") is None and params.get("expression") is not None:
            params = {**params, "condition": {"expression": params["expression"]}}
        label = choose_if_label(params, ctx.vars)
        return ExecutionResult.ok(output={"label": label}, next_label=label)


@register_action(ActionType.FOREACH)
class ForeachHandler(BaseActionHandler):
    """Run a subflow once per element of a list variable."""

    resolve_templates = False

    @property
    def action_type(self) -> ActionType:
        return ActionType.FOREACH

    @property
    def description(self) -> str:
        return "Loop over a list"

    def validate(self, action: Action) -> ValidationResult:
        result = self.require(action.params, "listVar", "subflowId")
        concurrency = action.params.get("concurrency", 1)
        if not isinstance(concurrency, int) or concurrency < 1:
            result.ok = False
            result.errors.append("foreach 'concurrency' must be a positive integer")
        return result

    def describe(self, action: Action) -> str:
        return f"For each {action.params.get('itemVar', 'item')} in {action.params.get('listVar')}"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        directive = ControlDirective(
            kind="foreach",
            subflow_id=str(params["subflowId"]),
            list_var=str(params["listVar"]),
            item_var=str(params.get("itemVar") or "item"),
            concurrency=int(params.get("concurrency", 1)),
        )
        return ExecutionResult.ok(control=directive)


@register_action(ActionType.WHILE)
class WhileHandler(BaseActionHandler):
    """Run a subflow while a condition holds, up to a hard iteration cap."""

    resolve_templates = False

    @property
    def action_type(self) -> ActionType:
        return ActionType.WHILE

    @property
    def description(self) -> str:
        return "Loop while a condition holds"

    def validate(self, action: Action) -> ValidationResult:
        result = self.require(action.params, "subflowId")
        if action.params.get("condition") is None:
            result.ok = False
            result.errors.append("while requires 'condition'")
        return result

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        cap = params.get("maxIterations")
        if cap is not None and int(cap) < 0:
            raise ActionValidationError("while 'maxIterations' must not be negative", self.action_type.value)
        directive = ControlDirective(
            kind="while",
            subflow_id=str(params["subflowId"]),
            condition=params["condition"],
            max_iterations=int(cap) if cap is not None else ctx.settings.max_loop_iterations,
        )
        return ExecutionResult.ok(control=directive)
