"""
Tests for the Playwright browser binding.
"""

import base64

import pytest
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import Error as PlaywrightError

from flow_replay.browsers.playwright_browser import PlaywrightBrowserControl, _PageNetwork
from flow_replay.exceptions import BrowserError, NavigationError, RefResolutionError, TabNotFoundError


INFO = {"tag": "button", "text": "Sign in", "attributes": {"id": "login"}}


def make_page(url="https://example.com/login"):
    page = MagicMock()
    page.url = url
    page.evaluate = AsyncMock(return_value="complete")
    page.title = AsyncMock(return_value="Login")
    page.goto = AsyncMock()
    page.close = AsyncMock()
    page.bring_to_front = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"png")
    page.main_frame = MagicMock()
    page.main_frame.query_selector_all = AsyncMock(return_value=[])
    page.main_frame.evaluate = AsyncMock(return_value=42)
    page.main_frame.url = url
    page.main_frame.parent_frame = None
    page.frames = [page.main_frame]
    return page


def make_handle(connected=True, visible=True):
    handle = MagicMock()
    handle.evaluate = AsyncMock(side_effect=lambda script, *args: connected if "isConnected" in script else INFO)
    handle.is_visible = AsyncMock(return_value=visible)
    handle.click = AsyncMock()
    handle.fill = AsyncMock()
    return handle


def request(method="GET", url="https://api.example.com/items", resource_type="fetch"):
    req = MagicMock()
    req.method = method
    req.url = url
    req.resource_type = resource_type
    return req


@pytest.fixture
def page():
    return make_page()


@pytest.fixture
def control(page):
    control = PlaywrightBrowserControl()
    control._context = MagicMock()
    control._active = control._track_page(page)
    return control


# =============================================================================
# NETWORK BOOKKEEPING
# =============================================================================

class TestPageNetwork:
    """Test in-flight counting and request capture."""

    def test_busy_while_in_flight(self):
        network = _PageNetwork()
        req = request()
        network.on_request(req)
        assert network.idle_ms() == 0.0
        network.on_done(req)
        assert network.in_flight == 0

    def test_records_only_while_capturing(self):
        network = _PageNetwork()
        first, second = request(), request("POST", resource_type="xhr")
        network.on_request(first)
        network.on_done(first)
        assert network.requests == []

        network.capturing = True
        network.on_request(second)
        network.on_done(second, failed=True)
        assert network.requests[0]["type"] == "XHR"
        assert network.requests[0]["failed"] is True
        assert network.requests[0]["method"] == "POST"


# =============================================================================
# TABS
# =============================================================================

class TestTabs:
    """Test tab bookkeeping."""

    def test_track_page_is_idempotent(self, control, page):
        assert control._track_page(page) == control._active
        events = [c.args[0] for c in page.on.call_args_list]
        assert events == ["request", "requestfinished", "requestfailed", "close"]

    @pytest.mark.asyncio
    async def test_tab_info(self, control):
        tab = await control.get_active_tab()
        assert tab.url == "https://example.com/login"
        assert tab.status == "complete"
        assert tab.title == "Login"
        assert await control.get_tab(99) is None

    @pytest.mark.asyncio
    async def test_open_and_close(self, control):
        new_page = make_page("about:blank")
        control._context.new_page = AsyncMock(return_value=new_page)

        tab = await control.open_tab("https://example.com/report")
        new_page.goto.assert_awaited_once_with("https://example.com/report", wait_until="commit")
        assert control._active == tab.id

        await control.close_tab(tab.id)
        assert await control.get_tab(tab.id) is None
        assert control._active != tab.id

    @pytest.mark.asyncio
    async def test_open_tab_requires_launch(self):
        with pytest.raises(BrowserError):
            await PlaywrightBrowserControl().open_tab()

    @pytest.mark.asyncio
    async def test_unknown_tab(self, control):
        with pytest.raises(TabNotFoundError):
            await control.switch_tab(99)

    @pytest.mark.asyncio
    async def test_navigation_error(self, control, page):
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        with pytest.raises(NavigationError):
            await control.navigate(control._active, "https://nope.invalid")


# =============================================================================
# ELEMENTS
# =============================================================================

class TestElements:
    """Test refs backed by element handles."""

    @pytest.mark.asyncio
    async def test_query_issues_refs(self, control, page):
        handle = make_handle()
        page.main_frame.query_selector_all.return_value = [handle]

        matches = await control.query(control._active, "#login")
        assert matches[0].ref == "e1"
        assert matches[0].selector == "#login"
        assert matches[0].attributes == {"id": "login"}

        resolved = await control.resolve_ref(control._active, "e1")
        assert resolved.text == "Sign in"

    @pytest.mark.asyncio
    async def test_xpath_query(self, control, page):
        await control.query(control._active, "//button", xpath=True)
        page.main_frame.query_selector_all.assert_awaited_once_with("xpath=//button")

    @pytest.mark.asyncio
    async def test_bad_selector_matches_nothing(self, control, page):
        page.main_frame.query_selector_all.side_effect = PlaywrightError("Unexpected token")
        assert await control.query(control._active, "##") == []

    @pytest.mark.asyncio
    async def test_detached_ref_expires(self, control, page):
        page.main_frame.query_selector_all.return_value = [make_handle(connected=False)]
        await control.query(control._active, "#login")

        with pytest.raises(RefResolutionError) as exc:
            await control.resolve_ref(control._active, "e1")
        assert exc.value.reason == RefResolutionError.EXPIRED

        with pytest.raises(RefResolutionError) as exc:
            await control.resolve_ref(control._active, "e1")
        assert exc.value.reason == RefResolutionError.NOT_FOUND

    @pytest.mark.asyncio
    async def test_ref_bound_to_tab(self, control, page):
        page.main_frame.query_selector_all.return_value = [make_handle()]
        await control.query(control._active, "#login")
        with pytest.raises(RefResolutionError):
            await control.resolve_ref(control._active + 1, "e1")

    @pytest.mark.asyncio
    async def test_click_and_fill(self, control, page):
        handle = make_handle()
        page.main_frame.query_selector_all.return_value = [handle]
        await control.query(control._active, "#login")

        await control.click(control._active, "e1", click_count=2)
        handle.click.assert_awaited_once_with(button="left", click_count=2, modifiers=None)

        await control.fill(control._active, "e1", "ada")
        handle.fill.assert_awaited_once_with("ada")


# =============================================================================
# SCRIPTS, FRAMES AND CAPTURE
# =============================================================================

class TestRunSupport:
    """Test scripts, frames, screenshots and network capture."""

    @pytest.mark.asyncio
    async def test_evaluate_wraps_function_body(self, control, page):
        result = await control.evaluate(control._active, "return 1 + 1", [3])
        assert result == 42
        page.main_frame.evaluate.assert_awaited_once_with("async (args) => { return 1 + 1\n}", [3])

    @pytest.mark.asyncio
    async def test_frames(self, control, page):
        child = MagicMock()
        child.url = "https://pay.example.com/widget"
        child.parent_frame = page.main_frame
        page.frames = [page.main_frame, child]

        frames = await control.list_frames(control._active)
        assert [(f.id, f.parent_id) for f in frames] == [(0, None), (1, 0)]

        with pytest.raises(BrowserError):
            await control.query(control._active, "#x", frame_id=5)

    @pytest.mark.asyncio
    async def test_screenshot_is_base64(self, control):
        image = await control.screenshot(control._active)
        assert base64.b64decode(image) == b"png"

    @pytest.mark.asyncio
    async def test_network_capture(self, control):
        tab_id = control._active
        assert await control.stop_network_capture(tab_id) is None
        assert await control.start_network_capture(tab_id) is True

        network = control._network[tab_id]
        req = request()
        network.on_request(req)
        network.on_done(req)

        summary = await control.stop_network_capture(tab_id)
        assert summary["requestCount"] == 1
        assert summary["requests"][0]["type"] == "Fetch"
