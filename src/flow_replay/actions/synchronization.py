"""
Synchronization Actions - wait, delay and assert.

Every wait is bounded by the step timeout (or the default wait) and by the
remaining run budget.
"""

import asyncio
import time
from typing import Any, Dict, Optional

from flow_replay.exceptions import ActionError, ActionTimeoutError, ErrorCode
from flow_replay.interfaces.action import (
    ActionExecutionContext,
    ActionType,
    BaseActionHandler,
    ValidationResult,
)
from flow_replay.models.flow import Action
from flow_replay.models.results import ExecutionResult
from flow_replay.policies.wait import network_idle_window_ms, wait_for_navigation_done, wait_for_network_idle
from flow_replay.registry import register_action

WAIT_KINDS = ("selector", "text", "navigation", "networkIdle", "sleep")
ASSERT_KINDS = ("exists", "notExists", "visible", "textPresent", "attribute", "urlContains")


async def bounded_sleep(ctx: ActionExecutionContext, ms: float, action_type: str) -> None:
    """Sleep ``ms``; if the run budget is shorter, sleep what is left and fail with TIMEOUT."""
    remaining = ctx.remaining_budget_ms()
    if remaining is not None and remaining < ms:
        await asyncio.sleep(max(0.0, remaining) / 1000)
        raise ActionTimeoutError("Global deadline reached during wait", int(ms), action_type)
    await asyncio.sleep(ms / 1000)


def _wait_condition(params: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize step-form and action-form wait parameters into one condition."""
    condition = dict(params.get("condition") or params)
    if "kind" in condition:
        return condition
    if condition.get("selector"):
        condition["kind"] = "selector"
    elif condition.get("text"):
        condition["kind"] = "text"
    elif condition.get("navigation") or condition.get("waitForNavigation"):
        condition["kind"] = "navigation"
    elif condition.get("networkIdle") or condition.get("waitForNetworkIdle"):
        condition["kind"] = "networkIdle"
    elif condition.get("sleep") is not None or condition.get("ms") is not None:
        condition["kind"] = "sleep"
        condition.setdefault("ms", condition.get("sleep"))
    return condition


@register_action(ActionType.WAIT)
class WaitHandler(BaseActionHandler):
    """Block until a selector, text, navigation or network idle appears."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.WAIT

    @property
    def description(self) -> str:
        return "Wait for a condition"

    def validate(self, action: Action) -> ValidationResult:
        kind = _wait_condition(action.params).get("kind")
        if kind not in WAIT_KINDS:
            return ValidationResult.failed(f"wait requires one of {', '.join(WAIT_KINDS)}")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        condition = _wait_condition(action.params)
        detail = condition.get("selector") or condition.get("text") or condition.get("ms") or ""
        return f"Wait for {condition.get('kind')} {detail}".strip()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        condition = _wait_condition(params)
        kind = condition["kind"]
        settings = ctx.settings

        if kind == "sleep":
            await bounded_sleep(ctx, float(condition.get("ms") or 0), self.action_type.value)
            return ExecutionResult.ok()

        timeout = ctx.wait_budget_ms(params.get("timeoutMs") or condition.get("timeoutMs"))
        if kind == "navigation":
            await wait_for_navigation_done(ctx.browser, ctx.tab_id, timeout, None, settings.navigation_poll_ms)
            return ExecutionResult.ok()
        if kind == "networkIdle":
            idle = condition.get("idleMs") or network_idle_window_ms(timeout, settings.default_network_idle_ms)
            await wait_for_network_idle(ctx.browser, ctx.tab_id, timeout, float(idle), settings.navigation_poll_ms)
            return ExecutionResult.ok()

        deadline = time.monotonic() + timeout / 1000
        while True:
            if await self._present(ctx, condition):
                return ExecutionResult.ok()
            if time.monotonic() >= deadline:
                detail = condition.get("selector") or condition.get("text")
                raise ActionTimeoutError(f"Timed out waiting for {kind} '{detail}'", int(timeout), self.action_type.value)
            await asyncio.sleep(settings.navigation_poll_ms / 1000)

    async def _present(self, ctx: ActionExecutionContext, condition: Dict[str, Any]) -> bool:
        want_visible = condition.get("visible", True)
        if condition["kind"] == "selector":
            matches = await ctx.browser.query(ctx.tab_id, str(condition["selector"]), ctx.frame_id)
            return any(m.visible for m in matches) if want_visible else bool(matches)
        needle = str(condition["text"]).casefold()
        elements = await ctx.browser.read_page(ctx.tab_id, ctx.frame_id)
        return any(needle in e.text.casefold() for e in elements if e.visible or not want_visible)


@register_action(ActionType.DELAY)
class DelayHandler(BaseActionHandler):
    """Sleep for a fixed time."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.DELAY

    @property
    def description(self) -> str:
        return "Delay"

    @staticmethod
    def _ms(params: Dict[str, Any]) -> Optional[float]:
        value = params.get("ms", params.get("durationMs"))
        return float(value) if value is not None else None

    def validate(self, action: Action) -> ValidationResult:
        ms = self._ms(action.params)
        if ms is None or ms < 0:
            return ValidationResult.failed("delay requires a non-negative 'ms'")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        return f"Delay {self._ms(action.params) or 0:.0f}ms"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        await bounded_sleep(ctx, min(self._ms(params) or 0, ctx.settings.max_wait_ms), self.action_type.value)
        return ExecutionResult.ok()


def _assert_condition(params: Dict[str, Any]) -> Dict[str, Any]:
    condition = dict(params.get("condition") or params)
    if "kind" in condition:
        return condition
    for kind in ASSERT_KINDS:
        if condition.get(kind) is not None:
            value = condition[kind]
            if isinstance(value, dict):
                return {"kind": kind, **value}
            key = "text" if kind == "textPresent" else "value" if kind == "urlContains" else "selector"
            return {"kind": kind, key: value}
    return condition


@register_action(ActionType.ASSERT)
class AssertHandler(BaseActionHandler):
    """
    Check a page condition.

    failStrategy decides what a failed check does: ``stop`` fails the step
    without retry, ``retry`` fails it so the retry policy applies, and
    ``warn`` logs a warning and lets the step succeed.
    """

    @property
    def action_type(self) -> ActionType:
        return ActionType.ASSERT

    @property
    def description(self) -> str:
        return "Assert a page condition"

    def validate(self, action: Action) -> ValidationResult:
        condition = _assert_condition(action.params)
        if condition.get("kind") not in ASSERT_KINDS:
            return ValidationResult.failed(f"assert requires one of {', '.join(ASSERT_KINDS)}")
        strategy = action.params.get("failStrategy", "stop")
        if strategy not in ("stop", "warn", "retry"):
            return ValidationResult.failed(f"Unknown failStrategy: {strategy}")
        return ValidationResult()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        condition = _assert_condition(params)
        passed, detail = await self._check(ctx, condition)
        if passed:
            return ExecutionResult.ok(output={"passed": True})

        message = f"Assertion failed: {detail}"
        strategy = params.get("failStrategy", "stop")
        if strategy == "warn":
            ctx.emit(message, "warning")
            return ExecutionResult.ok(output={"passed": False})
        raise ActionError(message, ErrorCode.ASSERTION_FAILED, self.action_type.value, retryable=strategy == "retry")

    async def _check(self, ctx: ActionExecutionContext, condition: Dict[str, Any]) -> "tuple[bool, str]":
        kind = condition["kind"]
        if kind == "urlContains":
            tab = await ctx.browser.get_tab(ctx.tab_id)
            value = str(condition.get("value", ""))
            return bool(tab and value in tab.url), f"URL contains '{value}'"
        if kind == "textPresent":
            text = str(condition.get("text", ""))
            elements = await ctx.browser.read_page(ctx.tab_id, ctx.frame_id)
            return any(text.casefold() in e.text.casefold() for e in elements if e.visible), f"text '{text}' present"

        selector = str(condition.get("selector", ""))
        matches = await ctx.browser.query(ctx.tab_id, selector, ctx.frame_id)
        if kind == "exists":
            return bool(matches), f"'{selector}' exists"
        if kind == "notExists":
            return not matches, f"'{selector}' does not exist"
        if kind == "visible":
            return any(m.visible for m in matches), f"'{selector}' visible"

        name = str(condition.get("name", ""))
        expected = condition.get("value")
        actual = matches[0].attributes.get(name) if matches else None
        if expected is None:
            return actual is not None, f"'{selector}' has attribute {name}"
        return actual == str(expected), f"'{selector}' [{name}] == '{expected}' (got {actual!r})"
