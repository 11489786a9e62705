"""
Navigation and network-idle waits applied after qualifying actions.

All waits poll the browser collaborator and are bounded by the caller's
timeout, which the step runner has already cut down to the remaining run
budget.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from flow_replay.exceptions import ActionTimeoutError, ErrorCode, ActionError
from flow_replay.interfaces.browser import IBrowserControl

logger = logging.getLogger(__name__)

NAV_WAIT_TYPES = frozenset({"click", "dblclick"})
ALWAYS_NAV_WAIT_TYPES = frozenset({"navigate", "openTab"})


def network_idle_window_ms(total_ms: float, max_idle_ms: int = 1500) -> float:
    """Idle window for a wait of ``total_ms``: a third of it, within [500, max_idle_ms]."""
    return min(float(max_idle_ms), max(500.0, total_ms / 3))


async def wait_for_navigation_done(
    browser: IBrowserControl,
    tab_id: int,
    timeout_ms: float,
    before_url: Optional[str] = None,
    poll_ms: int = 100,
) -> str:
    """
    Block until the tab finished loading.

    When ``before_url`` is given the URL must also differ from it.

    Returns:
        The final URL

    Raises:
        ActionTimeoutError: If navigation did not finish in time
        ActionError: TAB_NOT_FOUND when the tab disappears
    """
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        tab = await browser.get_tab(tab_id)
        if tab is None:
            raise ActionError(f"Tab {tab_id} closed while waiting for navigation", ErrorCode.TAB_NOT_FOUND)
        changed = before_url is None or tab.url != before_url
        if changed and tab.status == "complete":
            return tab.url
        if time.monotonic() >= deadline:
            raise ActionTimeoutError("Navigation did not complete", int(timeout_ms))
        await asyncio.sleep(poll_ms / 1000)


async def wait_for_network_idle(
    browser: IBrowserControl,
    tab_id: int,
    timeout_ms: float,
    idle_ms: float,
    poll_ms: int = 100,
) -> None:
    """
    Block until no network activity was observed for ``idle_ms``.

    Raises:
        ActionTimeoutError: If the network never went idle in time
    """
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        if await browser.network_idle_ms(tab_id) >= idle_ms:
            return
        if time.monotonic() >= deadline:
            raise ActionTimeoutError("Network did not become idle", int(timeout_ms))
        await asyncio.sleep(poll_ms / 1000)


async def maybe_wait_for_navigation(
    browser: IBrowserControl,
    tab_id: int,
    before_url: str,
    window_ms: float,
    timeout_ms: float,
    poll_ms: int = 100,
) -> bool:
    """
    Sniff for a navigation started by the last action.

    If the URL changes or the tab starts loading within ``window_ms``, wait
    for it to complete. Never fails when nothing happens.

    Returns:
        True if a navigation was observed
    """
    sniff_deadline = time.monotonic() + min(window_ms, timeout_ms) / 1000
    while time.monotonic() < sniff_deadline:
        tab = await browser.get_tab(tab_id)
        if tab is None:
            return False
        if tab.url != before_url or tab.status == "loading":
            logger.debug(f"Navigation detected after action: {before_url} -> {tab.url}")
            await wait_for_navigation_done(browser, tab_id, timeout_ms, None, poll_ms)
            return True
        await asyncio.sleep(poll_ms / 1000)
    return False


async def apply_post_action_wait(
    browser: IBrowserControl,
    step_type: str,
    params: Dict[str, Any],
    tab_id: int,
    before_url: Optional[str],
    timeout_ms: float,
    max_idle_ms: int = 1500,
    quick_window_ms: int = 1200,
    poll_ms: int = 100,
) -> None:
    """
    Apply the wait a step requested after it ran.

    navigate and openTab always wait for the load to complete. click and
    dblclick wait for navigation when ``after.waitForNavigation`` is set,
    for network idle when ``after.waitForNetworkIdle`` is set, and otherwise
    sniff briefly for a navigation they may have triggered.
    """
    if timeout_ms <= 0:
        raise ActionTimeoutError("No time budget left for post-action wait", 0, step_type)

    if step_type in ALWAYS_NAV_WAIT_TYPES:
        await wait_for_navigation_done(browser, tab_id, timeout_ms, None, poll_ms)
        return

    if step_type not in NAV_WAIT_TYPES:
        return

    after = params.get("after") or {}
    if after.get("waitForNavigation"):
        await wait_for_navigation_done(browser, tab_id, timeout_ms, before_url, poll_ms)
    elif after.get("waitForNetworkIdle"):
        idle_ms = network_idle_window_ms(timeout_ms, max_idle_ms)
        await wait_for_network_idle(browser, tab_id, timeout_ms, idle_ms, poll_ms)
    elif before_url is not None:
        await maybe_wait_for_navigation(browser, tab_id, before_url, quick_window_ms, timeout_ms, poll_ms)
