"""
Browser Control Interface - the collaborator contract the engine drives.

The engine never talks to a DOM directly. It composes the primitive
operations declared here; a binding (Playwright, an extension bridge, a test
fake) implements them.

Element identity crosses this boundary as opaque ``ref`` strings. A ref is
issued by ``query``/``read_page`` and may later expire when the document
changes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flow_replay.exceptions import RefResolutionError


@dataclass
class TabInfo:
    """
    Snapshot of a browser tab.

    Attributes:
        id: Tab id
        url: Current URL
        status: loading or complete
        title: Document title
    """
    id: int
    url: str = ""
    status: str = "complete"
    title: str = ""


@dataclass
class FrameInfo:
    id: int
    url: str = ""
    index: int = 0
    parent_id: Optional[int] = None


@dataclass
class ElementMatch:
    """
    A live element found on the page.

    Attributes:
        ref: Opaque handle usable with the element operations
        tag: Lowercase tag name
        text: Visible text content
        visible: Whether the element is rendered and visible
        selector: A selector that located the element, when known
        attributes: Element attributes, when known
    """
    ref: str
    tag: str = ""
    text: str = ""
    visible: bool = True
    selector: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)


class IBrowserControl(ABC):
    """
    Primitive browser operations used by the engine.

    Every element operation takes the tab id and an optional frame id; a frame
    id of None means the top document.
    """

    # Tabs

    @abstractmethod
    async def get_active_tab(self) -> TabInfo:
        ...

    @abstractmethod
    async def get_tab(self, tab_id: int) -> Optional[TabInfo]:
        """Return tab info, or None when the tab no longer exists."""
        ...

    @abstractmethod
    async def list_tabs(self) -> List[TabInfo]:
        ...

    @abstractmethod
    async def open_tab(self, url: Optional[str] = None, new_window: bool = False, active: bool = True) -> TabInfo:
        ...

    @abstractmethod
    async def switch_tab(self, tab_id: int) -> TabInfo:
        ...

    @abstractmethod
    async def close_tab(self, tab_id: int) -> None:
        ...

    async def ensure_tab(self, target: str = "current", url: Optional[str] = None, refresh: bool = False) -> TabInfo:
        """
        Acquire the tab a run executes in.

        Args:
            target: current to reuse the active tab, new to open one
            url: Optional URL to load first
            refresh: Reload the current tab before running
        """
        if target == "new":
            return await self.open_tab(url)
        tab = await self.get_active_tab()
        if url:
            await self.navigate(tab.id, url)
        elif refresh:
            await self.reload(tab.id)
        return await self.get_tab(tab.id) or tab

    # Navigation

    @abstractmethod
    async def navigate(self, tab_id: int, url: str) -> None:
        """Start loading ``url``. Completion is observed through ``get_tab``."""
        ...

    @abstractmethod
    async def reload(self, tab_id: int) -> None:
        ...

    async def go_back(self, tab_id: int) -> None:
        await self.evaluate(tab_id, "history.back()")

    async def go_forward(self, tab_id: int) -> None:
        await self.evaluate(tab_id, "history.forward()")

    @abstractmethod
    async def network_idle_ms(self, tab_id: int) -> float:
        """Milliseconds since the last network activity, 0 while requests are in flight."""
        ...

    # Elements

    @abstractmethod
    async def resolve_ref(self, tab_id: int, ref: str, frame_id: Optional[int] = None) -> ElementMatch:
        """
        Dereference an element ref.

        Raises:
            RefResolutionError: NOT_FOUND or EXPIRED
        """
        ...

    @abstractmethod
    async def query(
        self,
        tab_id: int,
        selector: str,
        frame_id: Optional[int] = None,
        xpath: bool = False,
    ) -> List[ElementMatch]:
        """Return every element matching a CSS selector or an XPath expression."""
        ...

    @abstractmethod
    async def read_page(self, tab_id: int, frame_id: Optional[int] = None) -> List[ElementMatch]:
        """Return searchable visible elements with their text."""
        ...

    @abstractmethod
    async def click(
        self,
        tab_id: int,
        ref: str,
        frame_id: Optional[int] = None,
        button: str = "left",
        click_count: int = 1,
        modifiers: Optional[List[str]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def fill(
        self,
        tab_id: int,
        ref: str,
        value: str,
        frame_id: Optional[int] = None,
        clear: bool = True,
    ) -> None:
        ...

    @abstractmethod
    async def press_keys(
        self,
        tab_id: int,
        keys: List[str],
        ref: Optional[str] = None,
        frame_id: Optional[int] = None,
    ) -> None:
        """Press key chords such as ``Enter`` or ``Control+A`` in order."""
        ...

    @abstractmethod
    async def scroll(
        self,
        tab_id: int,
        ref: Optional[str] = None,
        x: int = 0,
        y: int = 0,
        frame_id: Optional[int] = None,
        into_view: bool = False,
    ) -> None:
        ...

    @abstractmethod
    async def drag(
        self,
        tab_id: int,
        start_ref: str,
        end_ref: str,
        path: Optional[List[Dict[str, float]]] = None,
        frame_id: Optional[int] = None,
    ) -> None:
        ...

    async def dispatch_event(
        self,
        tab_id: int,
        ref: str,
        event: str,
        init: Optional[Dict[str, Any]] = None,
        frame_id: Optional[int] = None,
    ) -> None:
        raise NotImplementedError("dispatch_event is not supported by this browser binding")

    async def set_attribute(
        self,
        tab_id: int,
        ref: str,
        name: str,
        value: Optional[str],
        frame_id: Optional[int] = None,
    ) -> None:
        """Set an attribute, or remove it when ``value`` is None."""
        raise NotImplementedError("set_attribute is not supported by this browser binding")

    # Scripts and artifacts

    @abstractmethod
    async def evaluate(
        self,
        tab_id: int,
        code: str,
        args: Optional[List[Any]] = None,
        frame_id: Optional[int] = None,
    ) -> Any:
        ...

    @abstractmethod
    async def screenshot(self, tab_id: int, ref: Optional[str] = None, full_page: bool = False) -> str:
        """Capture a PNG and return it base64-encoded."""
        ...

    @abstractmethod
    async def list_frames(self, tab_id: int) -> List[FrameInfo]:
        ...

    async def wait_for_download(
        self,
        filename_contains: Optional[str] = None,
        timeout_ms: int = 30000,
        wait_complete: bool = True,
    ) -> Optional[Dict[str, Any]]:
        raise NotImplementedError("downloads are not supported by this browser binding")

    # Run support

    async def start_network_capture(self, tab_id: int) -> bool:
        """Begin recording requests. Returns False when unsupported."""
        return False

    async def stop_network_capture(self, tab_id: int) -> Optional[Dict[str, Any]]:
        """Stop recording and return ``{"requests": [...]}``."""
        return None

    async def collect_variables(self, definitions: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Prompt the user for missing variables. None means unavailable or cancelled."""
        return None


class ElementRef:
    """
    Opaque handle to a previously located element.

    Refs are renewable capabilities: ``resolve`` either returns the live
    element or raises RefResolutionError with NOT_FOUND or EXPIRED.
    """

    __slots__ = ("value",)

    def __init__(self, value: str):
        self.value = value

    async def resolve(self, browser: IBrowserControl, tab_id: int, frame_id: Optional[int] = None) -> ElementMatch:
        match = await browser.resolve_ref(tab_id, self.value, frame_id)
        if match is None:
            raise RefResolutionError(self.value, RefResolutionError.NOT_FOUND)
        return match

    def __repr__(self) -> str:
        return f"ElementRef({self.value!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ElementRef) and other.value == self.value

    def __hash__(self) -> int:
        return hash(self.value)
