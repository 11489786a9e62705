"""
Pytest configuration and fixtures.
"""

import itertools
from typing import Any, Callable, Dict, List, Optional

import pytest

from flow_replay.config import EngineSettings, ReplaySettings, Settings
from flow_replay.engine.context import StepContext
from flow_replay.engine.run_logger import RunLogger
from flow_replay.engine.target_resolver import TargetResolver
from flow_replay.engine.variables import VariableStore
from flow_replay.exceptions import BrowserError, RefResolutionError
from flow_replay.interfaces.browser import ElementMatch, FrameInfo, IBrowserControl, TabInfo


# =============================================================================
# FAKE BROWSER
# =============================================================================

class FakeElement:
    """An element on a fake page, matched by exact selector strings."""

    _ids = itertools.count(1)

    def __init__(
        self,
        tag: str = "button",
        text: str = "",
        selectors: Optional[List[str]] = None,
        xpaths: Optional[List[str]] = None,
        attributes: Optional[Dict[str, str]] = None,
        visible: bool = True,
        navigates_to: Optional[str] = None,
    ):
        self.ref = f"e{next(self._ids)}"
        self.tag = tag
        self.text = text
        self.selectors = set(selectors or [])
        self.xpaths = set(xpaths or [])
        self.attributes = dict(attributes or {})
        self.visible = visible
        self.navigates_to = navigates_to
        self.connected = True
        self.value = ""

    def match(self, selector: Optional[str] = None) -> ElementMatch:
        return ElementMatch(
            ref=self.ref,
            tag=self.tag,
            text=self.text,
            visible=self.visible,
            selector=selector,
            attributes=dict(self.attributes),
        )


class FakeBrowser(IBrowserControl):
    """
    Scripted browser collaborator.

    Every call is recorded in ``calls`` as ``(name, args...)``.
    """

    def __init__(self, elements: Optional[List[FakeElement]] = None, url: str = "about:blank"):
        self.elements: List[FakeElement] = list(elements or [])
        self.tabs: Dict[int, TabInfo] = {1: TabInfo(id=1, url=url, status="complete", title="Fake")}
        self.active = 1
        self.frames: List[FrameInfo] = [FrameInfo(id=0, url=url, index=0)]
        self.calls: List[tuple] = []
        self.scripts: Dict[str, Any] = {}
        self.fail_clicks = 0
        self.idle_ms = 10_000.0
        self.capture_supported = False
        self.captured_requests: List[Dict[str, Any]] = []
        self.collected: Optional[Dict[str, Any]] = None
        self._tab_ids = itertools.count(2)

    # Helpers

    def add(self, *elements: FakeElement) -> None:
        self.elements.extend(elements)

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _element(self, ref: str) -> FakeElement:
        for element in self.elements:
            if element.ref == ref:
                return element
        raise RefResolutionError(ref, RefResolutionError.NOT_FOUND)

    # Tabs

    async def get_active_tab(self) -> TabInfo:
        return self.tabs[self.active]

    async def get_tab(self, tab_id: int) -> Optional[TabInfo]:
        return self.tabs.get(tab_id)

    async def list_tabs(self) -> List[TabInfo]:
        return list(self.tabs.values())

    async def open_tab(self, url: Optional[str] = None, new_window: bool = False, active: bool = True) -> TabInfo:
        tab_id = next(self._tab_ids)
        self.tabs[tab_id] = TabInfo(id=tab_id, url=url or "about:blank", status="complete")
        if active:
            self.active = tab_id
        self.calls.append(("open_tab", url))
        return self.tabs[tab_id]

    async def switch_tab(self, tab_id: int) -> TabInfo:
        self.active = tab_id
        return self.tabs[tab_id]

    async def close_tab(self, tab_id: int) -> None:
        self.tabs.pop(tab_id)
        if self.active == tab_id:
            self.active = next(iter(self.tabs))

    # Navigation

    async def navigate(self, tab_id: int, url: str) -> None:
        self.calls.append(("navigate", url))
        self.tabs[tab_id].url = url
        self.tabs[tab_id].status = "complete"

    async def reload(self, tab_id: int) -> None:
        self.calls.append(("reload",))

    async def network_idle_ms(self, tab_id: int) -> float:
        return self.idle_ms

    # Elements

    async def resolve_ref(self, tab_id: int, ref: str, frame_id: Optional[int] = None) -> ElementMatch:
        element = self._element(ref)
        if not element.connected:
            raise RefResolutionError(ref, RefResolutionError.EXPIRED)
        return element.match()

    async def query(self, tab_id: int, selector: str, frame_id: Optional[int] = None, xpath: bool = False) -> List[ElementMatch]:
        self.calls.append(("query", selector))
        pool = [e for e in self.elements if e.connected]
        if xpath:
            return [e.match(selector) for e in pool if selector in e.xpaths]
        return [e.match(selector) for e in pool if selector in e.selectors]

    async def read_page(self, tab_id: int, frame_id: Optional[int] = None) -> List[ElementMatch]:
        return [e.match() for e in self.elements if e.connected]

    async def click(self, tab_id, ref, frame_id=None, button="left", click_count=1, modifiers=None) -> None:
        self.calls.append(("click", ref, click_count))
        if self.fail_clicks > 0:
            self.fail_clicks -= 1
            raise BrowserError("Element is detached from the document")
        element = self._element(ref)
        if element.navigates_to:
            self.tabs[tab_id].url = element.navigates_to

    async def fill(self, tab_id, ref, value, frame_id=None, clear=True) -> None:
        self.calls.append(("fill", ref, value))
        element = self._element(ref)
        element.value = value if clear else element.value + value

    async def press_keys(self, tab_id, keys, ref=None, frame_id=None) -> None:
        self.calls.append(("press_keys", list(keys), ref))

    async def scroll(self, tab_id, ref=None, x=0, y=0, frame_id=None, into_view=False) -> None:
        self.calls.append(("scroll", ref, x, y, into_view))

    async def drag(self, tab_id, start_ref, end_ref, path=None, frame_id=None) -> None:
        self.calls.append(("drag", start_ref, end_ref))

    async def dispatch_event(self, tab_id, ref, event, init=None, frame_id=None) -> None:
        self.calls.append(("dispatch_event", ref, event))

    async def set_attribute(self, tab_id, ref, name, value, frame_id=None) -> None:
        self.calls.append(("set_attribute", ref, name, value))
        if value is None:
            self._element(ref).attributes.pop(name, None)
        else:
            self._element(ref).attributes[name] = value

    # Scripts and artifacts

    async def evaluate(self, tab_id, code, args=None, frame_id=None) -> Any:
        self.calls.append(("evaluate", code))
        result = self.scripts.get(code)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(*(args or []))
        return result

    async def screenshot(self, tab_id, ref=None, full_page=False) -> str:
        self.calls.append(("screenshot", ref))
        return "c2NyZWVuc2hvdA=="

    async def list_frames(self, tab_id: int) -> List[FrameInfo]:
        return list(self.frames)

    # Run support

    async def start_network_capture(self, tab_id: int) -> bool:
        return self.capture_supported

    async def stop_network_capture(self, tab_id: int) -> Optional[Dict[str, Any]]:
        if not self.capture_supported:
            return None
        return {"requestCount": len(self.captured_requests), "requests": self.captured_requests}

    async def collect_variables(self, definitions: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        self.calls.append(("collect_variables", [d["name"] for d in definitions]))
        return self.collected


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def engine_settings() -> EngineSettings:
    """Engine limits with short waits so tests do not sit in navigation sniffing."""
    return EngineSettings(quick_nav_wait_ms=0, navigation_poll_ms=10, default_wait_ms=1000)


@pytest.fixture
def settings(engine_settings) -> Settings:
    """Provide test settings."""
    return Settings(engine=engine_settings, replay=ReplaySettings(screenshot_on_failure=False))


@pytest.fixture
def login_page() -> List[FakeElement]:
    """Elements of a small login page."""
    return [
        FakeElement("input", "", ["#email", "input[name=\"email\"]"], attributes={"id": "email", "name": "email"}),
        FakeElement("input", "", ["#password"], attributes={"id": "password", "type": "password"}),
        FakeElement(
            "button",
            "Sign in",
            ["#login", "[role=\"button\"][aria-label=\"Sign in\"]"],
            xpaths=["//button[@id='login']"],
            attributes={"id": "login", "aria-label": "Sign in"},
            navigates_to="https://example.com/home",
        ),
        FakeElement("a", "Forgot password?", ["a.forgot"], attributes={"href": "/forgot"}),
    ]


@pytest.fixture
def browser(login_page) -> FakeBrowser:
    """Provide a fake browser showing the login page."""
    return FakeBrowser(login_page, url="https://example.com/login")


@pytest.fixture
def make_context(engine_settings) -> Callable[..., StepContext]:
    """Factory for a StepContext over a browser."""

    def create(browser: IBrowserControl, variables: Optional[Dict[str, Any]] = None, **overrides) -> StepContext:
        options = dict(
            browser=browser,
            vars=VariableStore(variables or {}),
            tab_id=1,
            run_id="run_test",
            settings=engine_settings,
            resolver=TargetResolver(browser),
            logger=RunLogger("run_test"),
        )
        options.update(overrides)
        return StepContext(**options)

    return create
