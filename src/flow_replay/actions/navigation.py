"""
Navigation Actions - page navigation, tabs, frames and downloads.

Tab and frame handlers update ``ctx.tab_id`` / ``ctx.frame_id`` in place so
every following step runs against the new context.
"""

from typing import Any, Dict, List, Optional

from flow_replay.actions.common import current_url, post_action_wait, store_output
from flow_replay.exceptions import ActionError, ErrorCode, TabNotFoundError
from flow_replay.interfaces.action import (
    ActionExecutionContext,
    ActionType,
    BaseActionHandler,
    ValidationResult,
)
from flow_replay.interfaces.browser import TabInfo
from flow_replay.models.flow import Action
from flow_replay.models.results import ExecutionResult
from flow_replay.registry import register_action


@register_action(ActionType.NAVIGATE)
class NavigateHandler(BaseActionHandler):
    """Navigate to a URL, or reload the current page."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.NAVIGATE

    @property
    def description(self) -> str:
        return "Navigate to a URL"

    def validate(self, action: Action) -> ValidationResult:
        if not action.params.get("refresh") and not action.params.get("url"):
            return ValidationResult.failed("navigate requires 'url' unless 'refresh' is set")
        return ValidationResult()

    def describe(self, action: Action) -> str:
        if action.params.get("refresh"):
            return "Reload the page"
        return f"Navigate to {action.params.get('url')}"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        if params.get("refresh"):
            await ctx.browser.reload(ctx.tab_id)
        else:
            await ctx.browser.navigate(ctx.tab_id, str(params["url"]))
        await post_action_wait(ctx, self.action_type.value, params, None)
        return ExecutionResult.ok(output={"url": await current_url(ctx)})


@register_action(ActionType.OPEN_TAB)
class OpenTabHandler(BaseActionHandler):
    """Open a new tab and make it the active one."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.OPEN_TAB

    @property
    def description(self) -> str:
        return "Open a new tab"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        active = params.get("active", True)
        tab = await ctx.browser.open_tab(params.get("url"), bool(params.get("newWindow")), active)
        if active:
            ctx.tab_id = tab.id
            ctx.frame_id = None
            await post_action_wait(ctx, self.action_type.value, params, None)
        store_output(ctx, params, tab.id)
        return ExecutionResult.ok(output={"tabId": tab.id, "url": tab.url})


async def _find_tab(ctx: ActionExecutionContext, params: Dict[str, Any]) -> TabInfo:
    tabs: List[TabInfo] = await ctx.browser.list_tabs()
    if params.get("tabId") is not None:
        wanted = int(params["tabId"])
        for tab in tabs:
            if tab.id == wanted:
                return tab
        raise TabNotFoundError(wanted)
    url_part = params.get("urlContains")
    title_part = params.get("titleContains")
    for tab in tabs:
        if url_part and url_part in tab.url:
            return tab
        if title_part and title_part in tab.title:
            return tab
    if params.get("index") is not None:
        index = int(params["index"])
        if 0 <= index < len(tabs):
            return tabs[index]
    raise TabNotFoundError(message=f"No tab matches {params}")


@register_action(ActionType.SWITCH_TAB)
class SwitchTabHandler(BaseActionHandler):
    """Activate another tab by id, index, URL or title."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.SWITCH_TAB

    @property
    def description(self) -> str:
        return "Switch tab"

    def validate(self, action: Action) -> ValidationResult:
        if not any(action.params.get(k) is not None for k in ("tabId", "urlContains", "titleContains", "index")):
            return ValidationResult.failed("switchTab requires tabId, index, urlContains or titleContains")
        return ValidationResult()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        tab = await _find_tab(ctx, params)
        tab = await ctx.browser.switch_tab(tab.id)
        ctx.tab_id = tab.id
        ctx.frame_id = None
        return ExecutionResult.ok(output={"tabId": tab.id, "url": tab.url})


@register_action(ActionType.CLOSE_TAB)
class CloseTabHandler(BaseActionHandler):
    """Close tabs; closing the active tab moves the run to the next active one."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.CLOSE_TAB

    @property
    def description(self) -> str:
        return "Close tab"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        ids = params.get("tabIds")
        if ids is None:
            ids = [params["tabId"]] if params.get("tabId") is not None else [ctx.tab_id]
        closed = []
        for tab_id in ids:
            if await ctx.browser.get_tab(int(tab_id)) is None:
                raise TabNotFoundError(int(tab_id))
            await ctx.browser.close_tab(int(tab_id))
            closed.append(int(tab_id))
        if ctx.tab_id in closed:
            tab = await ctx.browser.get_active_tab()
            ctx.tab_id = tab.id
            ctx.frame_id = None
        return ExecutionResult.ok(output={"closed": closed})


@register_action(ActionType.SWITCH_FRAME)
class SwitchFrameHandler(BaseActionHandler):
    """Select the frame subsequent element steps run in."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.SWITCH_FRAME

    @property
    def description(self) -> str:
        return "Switch frame"

    def validate(self, action: Action) -> ValidationResult:
        frame = action.params.get("frame") or action.params
        if not (frame.get("top") or frame.get("index") is not None or frame.get("urlContains")):
            return ValidationResult.failed("switchFrame requires top, index or urlContains")
        return ValidationResult()

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        frame = params.get("frame") or params
        if frame.get("top"):
            ctx.frame_id = None
            return ExecutionResult.ok(output={"frameId": None})

        frames = await ctx.browser.list_frames(ctx.tab_id)
        chosen: Optional[int] = None
        if frame.get("index") is not None:
            index = int(frame["index"])
            for info in frames:
                if info.index == index:
                    chosen = info.id
                    break
        else:
            needle = str(frame["urlContains"])
            for info in frames:
                if needle in info.url:
                    chosen = info.id
                    break
        if chosen is None:
            raise ActionError(f"Frame not found: {frame}", ErrorCode.FRAME_NOT_FOUND, self.action_type.value)
        ctx.frame_id = chosen
        return ExecutionResult.ok(output={"frameId": chosen})


@register_action(ActionType.HANDLE_DOWNLOAD)
class HandleDownloadHandler(BaseActionHandler):
    """Wait for a download and optionally store its info."""

    @property
    def action_type(self) -> ActionType:
        return ActionType.HANDLE_DOWNLOAD

    @property
    def description(self) -> str:
        return "Wait for a download"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        timeout = ctx.wait_budget_ms(params.get("timeoutMs"))
        try:
            info = await ctx.browser.wait_for_download(
                params.get("filenameContains"),
                int(timeout),
                bool(params.get("waitForComplete", True)),
            )
        except NotImplementedError as e:
            raise ActionError(str(e), ErrorCode.DOWNLOAD_FAILED, self.action_type.value, retryable=False)
        if not info:
            raise ActionError("No matching download observed", ErrorCode.DOWNLOAD_FAILED, self.action_type.value)
        store_output(ctx, params, info)
        return ExecutionResult.ok(output=info)
