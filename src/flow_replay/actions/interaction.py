"""
Interaction Actions - click, fill, key, scroll and drag.
"""

from typing import Any, Dict, List

from flow_replay.actions.common import current_url, post_action_wait
from flow_replay.exceptions import ActionValidationError
from flow_replay.interfaces.action import (
    ActionExecutionContext,
    ActionType,
    BaseActionHandler,
    ValidationResult,
    has_target,
)
from flow_replay.models.flow import Action
from flow_replay.models.results import ExecutionResult
from flow_replay.registry import register_action


def _target_label(target: Dict[str, Any]) -> str:
    for candidate in (target or {}).get("candidates") or []:
        for key in ("selector", "xpath", "text", "name", "value"):
            if candidate.get(key):
                return str(candidate[key])
    return "element"


@register_action(ActionType.CLICK)
class ClickHandler(BaseActionHandler):
    """Click an element."""

    click_count = 1

    @property
    def action_type(self) -> ActionType:
        return ActionType.CLICK

    @property
    def description(self) -> str:
        return "Click an element"

    def validate(self, action: Action) -> ValidationResult:
        if not has_target(action.params):
            return ValidationResult.failed(f"{self.action_type.value} requires a target")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        return f"{self.description}: {_target_label(action.params.get('target'))}"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        located = await self.locate(ctx, params.get("target"))
        before_url = await current_url(ctx)
        await ctx.browser.click(
            ctx.tab_id,
            located.ref,
            ctx.frame_id,
            button=params.get("button", "left"),
            click_count=self.click_count,
            modifiers=params.get("modifiers"),
        )
        await post_action_wait(ctx, self.action_type.value, params, before_url)
        return ExecutionResult.ok(resolved_by=located.resolved_by)


@register_action(ActionType.DBLCLICK)
class DoubleClickHandler(ClickHandler):
    """Double-click an element."""

    click_count = 2

    @property
    def action_type(self) -> ActionType:
        return ActionType.DBLCLICK

    @property
    def description(self) -> str:
        return "Double-click an element"


@register_action(ActionType.FILL)
class FillHandler(BaseActionHandler):
    """Set the value of an input, clearing it first by default."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.FILL

    @property
    def description(self) -> str:
        return "Fill an input"

    def validate(self, action: Action) -> ValidationResult:
        if not has_target(action.params):
            return ValidationResult.failed("fill requires a target")
        if "value" not in action.params:
            return ValidationResult.failed("fill requires 'value'")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        return f"Fill {_target_label(action.params.get('target'))}"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        located = await self.locate(ctx, params.get("target"))
        value = params.get("value")
        value = "" if value is None else str(value)
        await ctx.browser.fill(ctx.tab_id, located.ref, value, ctx.frame_id, clear=params.get("clear", True))
        return ExecutionResult.ok(resolved_by=located.resolved_by)


@register_action(ActionType.KEY)
class KeyHandler(BaseActionHandler):
    """Press key chords, optionally focusing a target first."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.KEY

    @property
    def description(self) -> str:
        return "Press keys"

    @staticmethod
    def _keys(params: Dict[str, Any]) -> List[str]:
        keys = params.get("keys", params.get("key"))
        if isinstance(keys, str):
            return [keys]
        return [str(k) for k in keys or []]

    def validate(self, action: Action) -> ValidationResult:
        if not self._keys(action.params):
            return ValidationResult.failed("key requires 'keys'")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        return f"Press {' '.join(self._keys(action.params))}"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        ref = None
        if has_target(params):
            ref = (await self.locate(ctx, params["target"])).ref
        await ctx.browser.press_keys(ctx.tab_id, self._keys(params), ref, ctx.frame_id)
        return ExecutionResult.ok()


@register_action(ActionType.SCROLL)
class ScrollHandler(BaseActionHandler):
    """Scroll the page, a container, or an element into view."""

    MODES = ("element", "offset", "container")

    @property
    def action_type(self) -> ActionType:
        return ActionType.SCROLL

    @property
    def description(self) -> str:
        return "Scroll"

    def _mode(self, params: Dict[str, Any]) -> str:
        mode = params.get("mode")
        if mode:
            return mode
        return "element" if has_target(params) else "offset"

    def validate(self, action: Action) -> ValidationResult:
        mode = self._mode(action.params)
        if mode not in self.MODES:
            return ValidationResult.failed(f"Unknown scroll mode: {mode}")
        if mode in ("element", "container") and not has_target(action.params):
            return ValidationResult.failed(f"scroll mode '{mode}' requires a target")
        return ValidationResult()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        mode = self._mode(params)
        x = int(params.get("x", params.get("deltaX", 0)) or 0)
        y = int(params.get("y", params.get("deltaY", 0)) or 0)
        if mode == "offset":
            await ctx.browser.scroll(ctx.tab_id, None, x, y, ctx.frame_id)
        else:
            located = await self.locate(ctx, params.get("target"), require_visible=False)
            await ctx.browser.scroll(ctx.tab_id, located.ref, x, y, ctx.frame_id, into_view=mode == "element")
        return ExecutionResult.ok()


@register_action(ActionType.DRAG)
class DragHandler(BaseActionHandler):
    """Drag from a start element to an end element."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.DRAG

    @property
    def description(self) -> str:
        return "Drag and drop"

    def validate(self, action: Action) -> ValidationResult:
        errors = [f"drag requires '{key}'" for key in ("start", "end") if not has_target(action.params, key)]
        return ValidationResult.failed(*errors) if errors else ValidationResult()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        start = await self.locate(ctx, params.get("start"))
        end = await self.locate(ctx, params.get("end"))
        path = params.get("path")
        if path is not None and not isinstance(path, list):
            raise ActionValidationError("drag 'path' must be a list of points", self.action_type.value)
        await ctx.browser.drag(ctx.tab_id, start.ref, end.ref, path, ctx.frame_id)
        return ExecutionResult.ok()
