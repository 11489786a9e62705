"""
Target Resolver - locate a symbolic element target on the live page.

A target carries an optional ephemeral ``ref`` plus ordered selector
``candidates``. Resolution tries the ref first; when it is missing or stale
the candidates are tried by descending weight until one yields exactly one
visible element.

Candidate shapes (both accepted):

* action form: ``{"type": "css", "selector": "#a"}``, ``{"type": "xpath", "xpath": "//a"}``,
  ``{"type": "text", "text": "Submit"}``, ``{"type": "aria", "role": "button", "name": "Go"}``
* step form: ``{"type": "css", "value": "#a"}``, ``{"type": "aria", "value": "button[name=Go]"}``
"""

import difflib
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from flow_replay.exceptions import RefResolutionError
from flow_replay.interfaces.browser import ElementMatch, ElementRef, IBrowserControl
from flow_replay.utils.templates import resolve_template

logger = logging.getLogger(__name__)

_ROLE_NAME = re.compile(r"^\s*([A-Za-z][\w-]*)\s*\[\s*name\s*=\s*(['\"]?)(.*?)\2\s*\]\s*$")
_ARIA_LABEL = re.compile(r"^\s*aria-label\s*=\s*(['\"]?)(.*?)\1\s*$")

# Native elements carrying an implicit ARIA role
_IMPLICIT_ROLE_TAGS: Dict[str, List[str]] = {
    "button": ["button", 'input[type="button"]', 'input[type="submit"]'],
    "link": ["a"],
    "textbox": ['input:not([type])', 'input[type="text"]', 'input[type="email"]', 'input[type="search"]', "textarea"],
    "checkbox": ['input[type="checkbox"]'],
    "radio": ['input[type="radio"]'],
    "combobox": ["select"],
    "heading": ["h1", "h2", "h3", "h4", "h5", "h6"],
}


@dataclass
class LocatedElement:
    """
    A resolved element.

    Attributes:
        match: The live element
        resolved_by: ref, css, attr, xpath, text or aria
        candidate_index: Index of the winning candidate, None for ref
        fallback_from: Strategy that was expected to win but did not
    """
    match: ElementMatch
    resolved_by: str
    candidate_index: Optional[int] = None
    fallback_from: Optional[str] = None

    @property
    def ref(self) -> str:
        return self.match.ref

    @property
    def fallback_used(self) -> bool:
        return self.fallback_from is not None


def _css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_aria(value: str) -> Tuple[Optional[str], Optional[str]]:
    """Split ``role[name=...]`` or ``aria-label=...`` into (role, name)."""
    match = _ROLE_NAME.match(value)
    if match:
        return match.group(1), match.group(3)
    match = _ARIA_LABEL.match(value)
    if match:
        return None, match.group(2)
    return None, value.strip() or None


def aria_selectors(role: Optional[str], name: Optional[str]) -> List[str]:
    """Expand a role/name pair into concrete attribute selectors, most specific first."""
    selectors: List[str] = []
    label = f'[aria-label="{_css_string(name)}"]' if name else ""
    if role:
        selectors.append(f'[role="{role}"]{label}')
        for tag in _IMPLICIT_ROLE_TAGS.get(role, []):
            selectors.append(f"{tag}{label}")
        if name and role == "textbox":
            quoted = _css_string(name)
            selectors.append(f'input[placeholder="{quoted}"]')
            selectors.append(f'textarea[placeholder="{quoted}"]')
            selectors.append(f'input[name="{quoted}"]')
        if name and role in ("button", "link"):
            selectors.append(f'[title="{_css_string(name)}"]')
    elif name:
        selectors.append(label)
    return selectors


def normalize_candidate(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """Bring a step-form or action-form candidate into action form."""
    kind = candidate.get("type", "css")
    result = dict(candidate)
    value = candidate.get("value")
    if value is not None:
        if kind in ("css", "attr") and "selector" not in result:
            result["selector"] = value
        elif kind == "xpath" and "xpath" not in result:
            result["xpath"] = value
        elif kind == "text" and "text" not in result:
            result["text"] = value
        elif kind == "aria" and "role" not in result and "name" not in result:
            role, name = parse_aria(str(value))
            if role:
                result["role"] = role
            if name:
                result["name"] = name
    return result


def order_candidates(candidates: List[Mapping[str, Any]]) -> List[Tuple[int, Dict[str, Any]]]:
    """Sort by descending weight, keeping declaration order for ties."""
    indexed = [(i, normalize_candidate(c)) for i, c in enumerate(candidates or [])]
    return sorted(indexed, key=lambda item: -float(item[1].get("weight", 0) or 0))


class TargetResolver:
    """
    Resolves element targets through the browser collaborator.

    Example:
        >>> resolver = TargetResolver(browser)
        >>> located = await resolver.locate(tab_id, {"candidates": [{"type": "css", "selector": "#go"}]})
        >>> located.resolved_by
        'css'
    """

    def __init__(self, browser: IBrowserControl, similarity_threshold: float = 0.6):
        self.browser = browser
        self.similarity_threshold = similarity_threshold

    async def locate(
        self,
        tab_id: int,
        target: Optional[Mapping[str, Any]],
        frame_id: Optional[int] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> Optional[LocatedElement]:
        """
        Resolve ``target`` to one visible element.

        Returns:
            LocatedElement, or None when nothing matches
        """
        if not target:
            return None
        variables = variables or {}
        stale_ref = False

        ref = target.get("ref")
        if ref:
            try:
                match = await ElementRef(str(ref)).resolve(self.browser, tab_id, frame_id)
                return LocatedElement(match=match, resolved_by="ref")
            except RefResolutionError as e:
                logger.debug(f"Ref {ref} unusable ({e.reason}), trying candidates")
                stale_ref = True

        ordered = order_candidates(list(target.get("candidates") or []))
        if not ordered and target.get("selector"):
            ordered = [(0, {"type": "css", "selector": target["selector"]})]
        tag_hint = ((target.get("hint") or {}).get("tagName") or target.get("tag") or "").lower() or None

        first_kind = ordered[0][1].get("type", "css") if ordered else None
        for position, (index, candidate) in enumerate(ordered):
            kind = candidate.get("type", "css")
            try:
                match = await self._try_candidate(tab_id, frame_id, candidate, variables, tag_hint)
            except RefResolutionError:
                match = None
            if match is None:
                continue

            fallback_from = None
            if stale_ref:
                fallback_from = "ref"
            elif position > 0 and kind != first_kind:
                fallback_from = first_kind
            if fallback_from:
                logger.info(f"Selector fallback: {fallback_from} -> {kind}")
            return LocatedElement(match=match, resolved_by=kind, candidate_index=index, fallback_from=fallback_from)

        logger.debug(f"No candidate matched target with {len(ordered)} candidate(s)")
        return None

    async def _try_candidate(
        self,
        tab_id: int,
        frame_id: Optional[int],
        candidate: Dict[str, Any],
        variables: Mapping[str, Any],
        tag_hint: Optional[str],
    ) -> Optional[ElementMatch]:
        kind = candidate.get("type", "css")

        if kind in ("css", "attr"):
            selector = resolve_template(candidate.get("selector"), variables)
            if not selector:
                return None
            return self._unique_visible(await self.browser.query(tab_id, str(selector), frame_id))

        if kind == "xpath":
            xpath = resolve_template(candidate.get("xpath"), variables)
            if not xpath:
                return None
            return self._unique_visible(await self.browser.query(tab_id, str(xpath), frame_id, xpath=True))

        if kind == "aria":
            role = candidate.get("role")
            name = resolve_template(candidate.get("name"), variables)
            for selector in aria_selectors(role, name):
                match = self._unique_visible(await self.browser.query(tab_id, selector, frame_id))
                if match:
                    return match
            return None

        if kind == "text":
            text = resolve_template(candidate.get("text"), variables)
            if not text:
                return None
            elements = await self.browser.read_page(tab_id, frame_id)
            return self.match_text(elements, str(text), tag_hint, exact=candidate.get("match") == "exact")

        logger.warning(f"Unknown selector candidate type: {kind}")
        return None

    @staticmethod
    def _unique_visible(matches: List[ElementMatch]) -> Optional[ElementMatch]:
        visible = [m for m in matches if m.visible]
        return visible[0] if len(visible) == 1 else None

    def match_text(
        self,
        elements: List[ElementMatch],
        text: str,
        tag_hint: Optional[str] = None,
        exact: bool = False,
    ) -> Optional[ElementMatch]:
        """
        Pick the element whose visible text matches ``text``.

        A unique case-insensitive substring hit wins; otherwise the best
        similarity score wins if it clears the threshold and beats the runner-up.
        """
        needle = " ".join(text.split()).casefold()
        pool = [e for e in elements if e.visible and e.text]
        if tag_hint:
            hinted = [e for e in pool if e.tag == tag_hint]
            pool = hinted or pool

        def norm(element: ElementMatch) -> str:
            return " ".join(element.text.split()).casefold()

        exact_hits = [e for e in pool if norm(e) == needle]
        if len(exact_hits) == 1:
            return exact_hits[0]
        if exact:
            return None

        substring_hits = [e for e in pool if needle in norm(e)]
        if len(substring_hits) == 1:
            return substring_hits[0]

        scored = sorted(
            ((difflib.SequenceMatcher(None, needle, norm(e)).ratio(), e) for e in (substring_hits or pool)),
            key=lambda item: item[0],
            reverse=True,
        )
        if not scored or scored[0][0] < self.similarity_threshold:
            return None
        if len(scored) > 1 and scored[1][0] == scored[0][0]:
            return None
        return scored[0][1]
