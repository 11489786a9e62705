"""
Playwright Browser - IBrowserControl implemented with Playwright.

Tabs are Playwright pages numbered in opening order. Frames are addressed by
their index in ``page.frames`` (0 is the main frame). Element refs are
``e<N>`` strings backed by ElementHandles; a ref expires when its element
leaves the document.

Example:
    >>> browser = PlaywrightBrowserControl()
    >>> await browser.launch(headless=True)
    >>> result = await run_flow(flow, browser)
    >>> await browser.close()
"""

import base64
import itertools
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from flow_replay.config.settings import BrowserSettings
from flow_replay.exceptions import (
    BrowserError,
    BrowserLaunchError,
    NavigationError,
    RefResolutionError,
    TabNotFoundError,
)
from flow_replay.interfaces.browser import ElementMatch, FrameInfo, IBrowserControl, TabInfo

logger = logging.getLogger(__name__)

READ_PAGE_SELECTOR = (
    "a, button, input, textarea, select, label, summary, [role], [aria-label], "
    "h1, h2, h3, h4, h5, h6, p, li, td, th, span"
)
READ_PAGE_LIMIT = 500

_DESCRIBE_JS = """el => ({
    tag: el.tagName.toLowerCase(),
    text: (el.innerText || el.value || el.getAttribute('aria-label') || '').trim().slice(0, 300),
    attributes: Object.fromEntries(Array.from(el.attributes).map(a => [a.name, a.value])),
})"""


class _PageNetwork:
    """Request bookkeeping for one page."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.last_activity = time.monotonic()
        self.capturing = False
        self.requests: List[Dict[str, Any]] = []
        self._started: Dict[Any, float] = {}

    def on_request(self, request: Any) -> None:
        self.in_flight += 1
        self.last_activity = time.monotonic()
        self._started[request] = time.time() * 1000

    def on_done(self, request: Any, failed: bool = False) -> None:
        self.in_flight = max(0, self.in_flight - 1)
        self.last_activity = time.monotonic()
        started = self._started.pop(request, None)
        if not self.capturing:
            return
        resource = request.resource_type
        self.requests.append({
            "method": request.method,
            "url": request.url,
            "type": {"xhr": "XHR", "fetch": "Fetch"}.get(resource, resource),
            "failed": failed,
            "requestTime": started,
            "responseTime": time.time() * 1000,
        })

    def idle_ms(self) -> float:
        if self.in_flight:
            return 0.0
        return (time.monotonic() - self.last_activity) * 1000


class PlaywrightBrowserControl(IBrowserControl):
    """
    Browser collaborator backed by a Playwright browser context.
    """

    def __init__(self, settings: Optional[BrowserSettings] = None):
        self.settings = settings or BrowserSettings()
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._pages: Dict[int, Any] = {}
        self._network: Dict[int, _PageNetwork] = {}
        self._active: Optional[int] = None
        self._tab_ids = itertools.count(1)
        self._ref_ids = itertools.count(1)
        self._refs: Dict[str, Tuple[int, Any]] = {}

    # Lifecycle

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def launch(self, **options: Any) -> None:
        """
        Start Playwright and open a browser context.

        Raises:
            BrowserLaunchError: If the browser cannot be started
        """
        settings = self.settings
        try:
            self._playwright = await async_playwright().start()
            launcher = getattr(self._playwright, settings.browser_type)
            self._browser = await launcher.launch(headless=settings.headless, slow_mo=settings.slow_mo, **options)
            self._context = await self._browser.new_context(
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
                accept_downloads=True,
            )
            self._context.set_default_timeout(settings.timeout_ms)
        except PlaywrightError as e:
            raise BrowserLaunchError(f"Failed to launch browser: {e}")
        self._context.on("page", self._track_page)
        logger.info(f"Launched {settings.browser_type} browser (headless={settings.headless})")

    async def close(self) -> None:
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self._pages.clear()
        self._refs.clear()
        logger.info("Browser closed")

    def _track_page(self, page: Any) -> int:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        tab_id = next(self._tab_ids)
        network = _PageNetwork()
        page.on("request", network.on_request)
        page.on("requestfinished", network.on_done)
        page.on("requestfailed", lambda request: network.on_done(request, failed=True))
        page.on("close", lambda _: self._forget(tab_id))
        self._pages[tab_id] = page
        self._network[tab_id] = network
        return tab_id

    def _forget(self, tab_id: int) -> None:
        self._pages.pop(tab_id, None)
        self._network.pop(tab_id, None)
        if self._active == tab_id:
            self._active = next(iter(self._pages), None)

    def _page(self, tab_id: int) -> Any:
        page = self._pages.get(tab_id)
        if page is None:
            raise TabNotFoundError(tab_id)
        return page

    def _frame(self, tab_id: int, frame_id: Optional[int]) -> Any:
        page = self._page(tab_id)
        if frame_id is None:
            return page.main_frame
        frames = page.frames
        if frame_id < 0 or frame_id >= len(frames):
            raise BrowserError(f"Frame {frame_id} not found in tab {tab_id}")
        return frames[frame_id]

    async def _tab_info(self, tab_id: int) -> TabInfo:
        page = self._page(tab_id)
        try:
            ready = await page.evaluate("document.readyState")
            title = await page.title()
        except PlaywrightError:
            ready, title = "loading", ""
        return TabInfo(id=tab_id, url=page.url, status="complete" if ready == "complete" else "loading", title=title)

    # Tabs

    async def get_active_tab(self) -> TabInfo:
        if self._active is None or self._active not in self._pages:
            return await self.open_tab()
        return await self._tab_info(self._active)

    async def get_tab(self, tab_id: int) -> Optional[TabInfo]:
        if tab_id not in self._pages:
            return None
        return await self._tab_info(tab_id)

    async def list_tabs(self) -> List[TabInfo]:
        return [await self._tab_info(tab_id) for tab_id in list(self._pages)]

    async def open_tab(self, url: Optional[str] = None, new_window: bool = False, active: bool = True) -> TabInfo:
        if self._context is None:
            raise BrowserError("Browser not launched. Call launch() first.")
        page = await self._context.new_page()
        tab_id = self._track_page(page)
        if active:
            self._active = tab_id
        if url:
            await self.navigate(tab_id, url)
        return await self._tab_info(tab_id)

    async def switch_tab(self, tab_id: int) -> TabInfo:
        page = self._page(tab_id)
        await page.bring_to_front()
        self._active = tab_id
        return await self._tab_info(tab_id)

    async def close_tab(self, tab_id: int) -> None:
        await self._page(tab_id).close()
        self._forget(tab_id)

    # Navigation

    async def navigate(self, tab_id: int, url: str) -> None:
        page = self._page(tab_id)
        try:
            await page.goto(url, wait_until="commit")
        except PlaywrightError as e:
            raise NavigationError(url, str(e))

    async def reload(self, tab_id: int) -> None:
        await self._page(tab_id).reload(wait_until="commit")

    async def go_back(self, tab_id: int) -> None:
        await self._page(tab_id).go_back(wait_until="commit")

    async def go_forward(self, tab_id: int) -> None:
        await self._page(tab_id).go_forward(wait_until="commit")

    async def network_idle_ms(self, tab_id: int) -> float:
        self._page(tab_id)
        return self._network[tab_id].idle_ms()

    # Elements

    async def _describe(self, tab_id: int, handle: Any, selector: Optional[str]) -> ElementMatch:
        ref = f"e{next(self._ref_ids)}"
        self._refs[ref] = (tab_id, handle)
        info = await handle.evaluate(_DESCRIBE_JS)
        return ElementMatch(
            ref=ref,
            tag=info["tag"],
            text=info["text"],
            visible=await handle.is_visible(),
            selector=selector,
            attributes=info["attributes"],
        )

    def _handle(self, tab_id: int, ref: str) -> Any:
        entry = self._refs.get(ref)
        if entry is None or entry[0] != tab_id:
            raise RefResolutionError(ref, RefResolutionError.NOT_FOUND)
        return entry[1]

    async def resolve_ref(self, tab_id: int, ref: str, frame_id: Optional[int] = None) -> ElementMatch:
        handle = self._handle(tab_id, ref)
        try:
            connected = await handle.evaluate("el => el.isConnected")
        except PlaywrightError:
            connected = False
        if not connected:
            self._refs.pop(ref, None)
            raise RefResolutionError(ref, RefResolutionError.EXPIRED)
        info = await handle.evaluate(_DESCRIBE_JS)
        return ElementMatch(ref=ref, tag=info["tag"], text=info["text"], visible=await handle.is_visible(), attributes=info["attributes"])

    async def query(self, tab_id: int, selector: str, frame_id: Optional[int] = None, xpath: bool = False) -> List[ElementMatch]:
        frame = self._frame(tab_id, frame_id)
        try:
            handles = await frame.query_selector_all(f"xpath={selector}" if xpath else selector)
        except PlaywrightError as e:
            logger.debug(f"Query {selector!r} failed: {e}")
            return []
        return [await self._describe(tab_id, handle, selector) for handle in handles]

    async def read_page(self, tab_id: int, frame_id: Optional[int] = None) -> List[ElementMatch]:
        frame = self._frame(tab_id, frame_id)
        matches = []
        for handle in await frame.query_selector_all(READ_PAGE_SELECTOR):
            if len(matches) >= READ_PAGE_LIMIT:
                break
            if await handle.is_visible():
                matches.append(await self._describe(tab_id, handle, None))
        return matches

    async def click(
        self,
        tab_id: int,
        ref: str,
        frame_id: Optional[int] = None,
        button: str = "left",
        click_count: int = 1,
        modifiers: Optional[List[str]] = None,
    ) -> None:
        await self._handle(tab_id, ref).click(button=button, click_count=click_count, modifiers=modifiers or None)

    async def fill(self, tab_id: int, ref: str, value: str, frame_id: Optional[int] = None, clear: bool = True) -> None:
        handle = self._handle(tab_id, ref)
        if clear:
            await handle.fill(value)
            return
        await handle.focus()
        await self._page(tab_id).keyboard.insert_text(value)

    async def press_keys(self, tab_id: int, keys: List[str], ref: Optional[str] = None, frame_id: Optional[int] = None) -> None:
        if ref:
            await self._handle(tab_id, ref).focus()
        keyboard = self._page(tab_id).keyboard
        for key in keys:
            await keyboard.press(key)

    async def scroll(
        self,
        tab_id: int,
        ref: Optional[str] = None,
        x: int = 0,
        y: int = 0,
        frame_id: Optional[int] = None,
        into_view: bool = False,
    ) -> None:
        if ref and into_view:
            await self._handle(tab_id, ref).scroll_into_view_if_needed()
        elif ref:
            await self._handle(tab_id, ref).evaluate("(el, [x, y]) => el.scrollBy(x, y)", [x, y])
        else:
            await self._page(tab_id).mouse.wheel(x, y)

    async def drag(
        self,
        tab_id: int,
        start_ref: str,
        end_ref: str,
        path: Optional[List[Dict[str, float]]] = None,
        frame_id: Optional[int] = None,
    ) -> None:
        start = await self._handle(tab_id, start_ref).bounding_box()
        end = await self._handle(tab_id, end_ref).bounding_box()
        if start is None or end is None:
            raise BrowserError("Drag source or target has no bounding box")
        mouse = self._page(tab_id).mouse
        await mouse.move(start["x"] + start["width"] / 2, start["y"] + start["height"] / 2)
        await mouse.down()
        for point in path or []:
            await mouse.move(point["x"], point["y"])
        await mouse.move(end["x"] + end["width"] / 2, end["y"] + end["height"] / 2, steps=5)
        await mouse.up()

    async def dispatch_event(
        self,
        tab_id: int,
        ref: str,
        event: str,
        init: Optional[Dict[str, Any]] = None,
        frame_id: Optional[int] = None,
    ) -> None:
        await self._handle(tab_id, ref).dispatch_event(event, init or {})

    async def set_attribute(self, tab_id: int, ref: str, name: str, value: Optional[str], frame_id: Optional[int] = None) -> None:
        await self._handle(tab_id, ref).evaluate(
            "(el, [name, value]) => value === null ? el.removeAttribute(name) : el.setAttribute(name, value)",
            [name, value],
        )

    # Scripts and artifacts

    async def evaluate(self, tab_id: int, code: str, args: Optional[List[Any]] = None, frame_id: Optional[int] = None) -> Any:
        """
        Run ``code`` as the body of a function receiving ``args``.
        """
        frame = self._frame(tab_id, frame_id)
        return await frame.evaluate(f"async (args) => {{ {code}\n}}", list(args or []))

    async def screenshot(self, tab_id: int, ref: Optional[str] = None, full_page: bool = False) -> str:
        if ref:
            data = await self._handle(tab_id, ref).screenshot()
        else:
            data = await self._page(tab_id).screenshot(full_page=full_page)
        return base64.b64encode(data).decode("ascii")

    async def list_frames(self, tab_id: int) -> List[FrameInfo]:
        frames = self._page(tab_id).frames
        result = []
        for index, frame in enumerate(frames):
            parent = frame.parent_frame
            result.append(FrameInfo(
                id=index,
                url=frame.url,
                index=index,
                parent_id=frames.index(parent) if parent is not None else None,
            ))
        return result

    async def wait_for_download(
        self,
        filename_contains: Optional[str] = None,
        timeout_ms: int = 30000,
        wait_complete: bool = True,
    ) -> Optional[Dict[str, Any]]:
        page = self._page(self._active) if self._active is not None else None
        if page is None:
            raise TabNotFoundError(None, "No active tab to wait for a download in")

        def matches(download: Any) -> bool:
            return not filename_contains or filename_contains in download.suggested_filename

        download = await page.wait_for_event("download", predicate=matches, timeout=timeout_ms)
        path = None
        if wait_complete:
            path = await download.path()
            if self.settings.downloads_path:
                target = f"{self.settings.downloads_path.rstrip('/')}/{download.suggested_filename}"
                await download.save_as(target)
                path = target
        return {"filename": download.suggested_filename, "url": download.url, "path": str(path) if path else None}

    # Run support

    async def start_network_capture(self, tab_id: int) -> bool:
        self._page(tab_id)
        network = self._network[tab_id]
        network.capturing = True
        network.requests = []
        return True

    async def stop_network_capture(self, tab_id: int) -> Optional[Dict[str, Any]]:
        network = self._network.get(tab_id)
        if network is None or not network.capturing:
            return None
        network.capturing = False
        requests, network.requests = network.requests, []
        return {"requestCount": len(requests), "requests": requests}
