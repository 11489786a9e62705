"""
Data Actions - extract, script, http and screenshot.

Outputs can be stored with ``saveAs`` (whole value) and ``assign``
(variable path -> output path).
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from flow_replay.actions.common import store_output
from flow_replay.exceptions import ActionError, ErrorCode, TargetNotFoundError
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

logger = logging.getLogger(__name__)

TEXT_ATTRS = (None, "", "text", "textContent", "innerText")


def _extract_mode(params: Dict[str, Any]) -> str:
    mode = params.get("mode")
    if mode:
        return mode
    return "js" if (params.get("code") or params.get("js")) else "selector"


@register_action(ActionType.EXTRACT)
class ExtractHandler(BaseActionHandler):
    """Read text or an attribute from elements, or the result of a script."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.EXTRACT

    @property
    def description(self) -> str:
        return "Extract data"

    def validate(self, action: Action) -> ValidationResult:
        params = action.params
        if _extract_mode(params) == "js":
            return self.require({"code": params.get("code") or params.get("js")}, "code")
        if not params.get("selector") and not has_target(params):
            return ValidationResult.failed("extract requires 'selector' or a target")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        target = action.params.get("selector") or "script"
        return f"Extract from {target}" + (f" into {action.params['saveAs']}" if action.params.get("saveAs") else "")

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        if _extract_mode(params) == "js":
            code = params.get("code") or params.get("js")
            try:
                value = await ctx.browser.evaluate(ctx.tab_id, str(code), params.get("args"), ctx.frame_id)
            except Exception as e:
                raise ActionError(f"Extract script failed: {e}", ErrorCode.SCRIPT_FAILED, self.action_type.value)
        else:
            value = await self._extract_elements(ctx, params)
        store_output(ctx, params, value)
        return ExecutionResult.ok(output=value)

    async def _extract_elements(self, ctx: ActionExecutionContext, params: Dict[str, Any]) -> Any:
        attr = params.get("attr")
        if params.get("selector"):
            matches = await ctx.browser.query(ctx.tab_id, str(params["selector"]), ctx.frame_id)
        else:
            matches = [(await self.locate(ctx, params["target"], require_visible=False)).match]
        if not matches:
            raise TargetNotFoundError(f"Nothing matched {params.get('selector')}", self.action_type.value)

        def read(match) -> Optional[str]:
            if attr in TEXT_ATTRS:
                return match.text.strip()
            return match.attributes.get(str(attr))

        if params.get("multiple"):
            return [read(m) for m in matches]
        return read(matches[0])


@register_action(ActionType.SCRIPT)
class ScriptHandler(BaseActionHandler):
    """
    Evaluate JavaScript in the page.

    Scripts with ``when: "after"`` are not run here; the result carries them
    in ``metadata["deferred_script"]`` and the step runner runs them after the
    next successful step.
    """

    @property
    def action_type(self) -> ActionType:
        return ActionType.SCRIPT

    @property
    def description(self) -> str:
        return "Run a script"

    def validate(self, action: Action) -> ValidationResult:
        return self.require({"code": action.params.get("code") or action.params.get("js")}, "code")

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        code = str(params.get("code") or params.get("js"))
        if params.get("when") == "after":
            return ExecutionResult.ok(deferred_script={
                "code": code,
                "args": params.get("args"),
                "step_id": ctx.step_id,
                "params": {k: params[k] for k in ("saveAs", "assign") if k in params},
            })
        try:
            value = await ctx.browser.evaluate(ctx.tab_id, code, params.get("args"), ctx.frame_id)
        except Exception as e:
            raise ActionError(f"Script failed: {e}", ErrorCode.SCRIPT_FAILED, self.action_type.value)
        store_output(ctx, params, value)
        return ExecutionResult.ok(output=value)


def status_ok(status: int, ok_status: Any) -> bool:
    """
    Check a status code against ``okStatus``.

    Accepts a list of codes, a ``"200-299"`` range string, a ``{"min", "max"}``
    mapping, or a single code. Defaults to 2xx.
    """
    if ok_status is None:
        return 200 <= status < 300
    if isinstance(ok_status, dict):
        return int(ok_status.get("min", 200)) <= status <= int(ok_status.get("max", 299))
    if isinstance(ok_status, (list, tuple)):
        return any(status_ok(status, item) for item in ok_status)
    if isinstance(ok_status, str) and "-" in ok_status:
        low, high = ok_status.split("-", 1)
        return int(low) <= status <= int(high)
    return status == int(ok_status)


@register_action(ActionType.HTTP)
class HttpHandler(BaseActionHandler):
    """Perform an HTTP request with httpx."""

    METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

    def __init__(self, client_factory: Optional[Callable[..., httpx.AsyncClient]] = None):
        self._client_factory = client_factory or httpx.AsyncClient

    @property
    def action_type(self) -> ActionType:
        return ActionType.HTTP

    @property
    def description(self) -> str:
        return "HTTP request"

    def validate(self, action: Action) -> ValidationResult:
        result = self.require(action.params, "url")
        method = str(action.params.get("method", "GET")).upper()
        if method not in self.METHODS:
            result.ok = False
            result.errors.append(f"Unsupported HTTP method: {method}")
        return result

    def describe(self, action: Action) -> str:
        return f"{str(action.params.get('method', 'GET')).upper()} {action.params.get('url')}"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        method = str(params.get("method", "GET")).upper()
        request: Dict[str, Any] = {"headers": params.get("headers") or {}}
        body = params.get("body")
        body_type = params.get("bodyType") or ("json" if isinstance(body, (dict, list)) else "text")
        if body is not None:
            if body_type == "json":
                request["json"] = body
            elif body_type == "form":
                request["data"] = body
            else:
                request["content"] = str(body)

        timeout = ctx.wait_budget_ms(params.get("timeoutMs"))
        try:
            async with self._client_factory(timeout=timeout / 1000, follow_redirects=True) as client:
                response = await client.request(method, str(params["url"]), **request)
        except httpx.HTTPError as e:
            raise ActionError(f"HTTP request failed: {e}", ErrorCode.NETWORK_REQUEST_FAILED, self.action_type.value)

        output = {
            "status": response.status_code,
            "headers": dict(response.headers),
            "body": self._parse_body(response, params.get("responseType", "auto")),
        }
        if not status_ok(response.status_code, params.get("okStatus")):
            raise ActionError(
                f"HTTP {method} {params['url']} returned {response.status_code}",
                ErrorCode.NETWORK_REQUEST_FAILED,
                self.action_type.value,
                details={"status": response.status_code},
            )
        store_output(ctx, params, output)
        return ExecutionResult.ok(output=output)

    @staticmethod
    def _parse_body(response: httpx.Response, response_type: str) -> Any:
        if response_type == "text":
            return response.text
        is_json = "json" in response.headers.get("content-type", "")
        if response_type == "json" or is_json:
            try:
                return response.json()
            except json.JSONDecodeError:
                if response_type == "json":
                    raise ActionError("Response body is not valid JSON", ErrorCode.NETWORK_REQUEST_FAILED, "http")
        return response.text


@register_action(ActionType.SCREENSHOT)
class ScreenshotHandler(BaseActionHandler):
    """Capture the page or an element as base64 PNG."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.SCREENSHOT

    @property
    def description(self) -> str:
        return "Take a screenshot"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        ref = None
        if has_target(params):
            ref = (await self.locate(ctx, params["target"], require_visible=False)).ref
        image = await ctx.browser.screenshot(ctx.tab_id, ref, bool(params.get("fullPage")))
        store_output(ctx, params, image)
        return ExecutionResult.ok(output=image)
