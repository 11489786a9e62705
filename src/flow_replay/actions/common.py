"""
Helpers shared by action handlers.
"""

from typing import Any, Dict, Mapping, Optional

from flow_replay.interfaces.action import ActionExecutionContext
from flow_replay.policies.wait import apply_post_action_wait
from flow_replay.utils.templates import get_by_path


async def current_url(ctx: ActionExecutionContext) -> Optional[str]:
    tab = await ctx.browser.get_tab(ctx.tab_id)
    return tab.url if tab else None


async def post_action_wait(
    ctx: ActionExecutionContext,
    action_type: str,
    params: Mapping[str, Any],
    before_url: Optional[str],
) -> None:
    """Run the post-action wait unless the step runner owns it."""
    if ctx.execution.skip_nav_wait:
        return
    settings = ctx.settings
    await apply_post_action_wait(
        ctx.browser,
        action_type,
        dict(params),
        ctx.tab_id,
        before_url,
        ctx.wait_budget_ms(),
        max_idle_ms=settings.default_network_idle_ms,
        quick_window_ms=settings.quick_nav_wait_ms,
        poll_ms=settings.navigation_poll_ms,
    )


def store_output(ctx: ActionExecutionContext, params: Mapping[str, Any], output: Any) -> None:
    """
    Apply ``saveAs`` and ``assign`` to an action output.

    ``assign`` maps variable paths to paths inside the output, e.g.
    ``{"order.id": "body.data.id"}``. An empty source path assigns the
    whole output.
    """
    save_as = params.get("saveAs")
    if save_as:
        ctx.vars.set_path(str(save_as), output)
    assign: Dict[str, Any] = params.get("assign") or {}
    for var_path, source_path in assign.items():
        value = output if not source_path else get_by_path(output, str(source_path))
        ctx.vars.set_path(str(var_path), value)
