"""
Tests for TargetResolver - ref first, then weighted selector candidates.
"""

import pytest

from flow_replay.engine.target_resolver import (
    TargetResolver,
    aria_selectors,
    normalize_candidate,
    order_candidates,
    parse_aria,
)
from flow_replay.interfaces.browser import ElementMatch
from tests.conftest import FakeBrowser, FakeElement


# =============================================================================
# HELPERS
# =============================================================================

class TestAriaParsing:
    """Test aria value parsing and selector expansion."""

    def test_role_and_name(self):
        assert parse_aria('button[name="Sign in"]') == ("button", "Sign in")
        assert parse_aria("link[name=Home]") == ("link", "Home")

    def test_aria_label(self):
        assert parse_aria("aria-label='Close'") == (None, "Close")

    def test_plain_value_is_name(self):
        assert parse_aria("Search") == (None, "Search")

    def test_selectors_most_specific_first(self):
        selectors = aria_selectors("button", "Go")
        assert selectors[0] == '[role="button"][aria-label="Go"]'
        assert 'button[aria-label="Go"]' in selectors
        assert selectors[-1] == '[title="Go"]'

    def test_textbox_adds_placeholder(self):
        selectors = aria_selectors("textbox", "Email")
        assert 'input[placeholder="Email"]' in selectors


class TestCandidates:
    """Test candidate normalization and ordering."""

    def test_step_form_normalized(self):
        assert normalize_candidate({"type": "css", "value": "#a"})["selector"] == "#a"
        assert normalize_candidate({"type": "xpath", "value": "//a"})["xpath"] == "//a"
        aria = normalize_candidate({"type": "aria", "value": "button[name=Go]"})
        assert (aria["role"], aria["name"]) == ("button", "Go")

    def test_order_by_weight_stable(self):
        ordered = order_candidates([
            {"type": "css", "selector": "#a", "weight": 1},
            {"type": "text", "text": "A", "weight": 5},
            {"type": "css", "selector": "#b", "weight": 1},
        ])
        assert [index for index, _ in ordered] == [1, 0, 2]


# =============================================================================
# RESOLUTION
# =============================================================================

class TestLocate:
    """Test resolution against a fake page."""

    @pytest.fixture
    def resolver(self, browser):
        return TargetResolver(browser)

    @pytest.mark.asyncio
    async def test_ref_wins(self, resolver, login_page):
        button = login_page[2]
        located = await resolver.locate(1, {"ref": button.ref, "candidates": [{"type": "css", "selector": "#email"}]})
        assert located.resolved_by == "ref"
        assert located.ref == button.ref
        assert located.fallback_used is False

    @pytest.mark.asyncio
    async def test_stale_ref_falls_back_to_css(self, resolver, login_page):
        button = login_page[2]
        button.connected = False
        replacement = FakeElement("button", "Sign in", ["#login"])
        resolver.browser.add(replacement)
        located = await resolver.locate(1, {"ref": button.ref, "candidates": [{"type": "css", "selector": "#login"}]})
        assert located.resolved_by == "css"
        assert located.ref == replacement.ref
        assert located.fallback_from == "ref"

    @pytest.mark.asyncio
    async def test_unknown_ref_falls_back(self, resolver):
        located = await resolver.locate(1, {"ref": "e-missing", "candidates": [{"type": "css", "selector": "#email"}]})
        assert located.resolved_by == "css"

    @pytest.mark.asyncio
    async def test_weighted_candidates(self, resolver, login_page):
        target = {"candidates": [
            {"type": "css", "selector": "#nope", "weight": 10},
            {"type": "xpath", "xpath": "//button[@id='login']", "weight": 5},
        ]}
        located = await resolver.locate(1, target)
        assert located.resolved_by == "xpath"
        assert located.candidate_index == 1
        assert located.fallback_from == "css"

    @pytest.mark.asyncio
    async def test_aria_candidate(self, resolver, login_page):
        located = await resolver.locate(1, {"candidates": [{"type": "aria", "value": 'button[name="Sign in"]'}]})
        assert located.ref == login_page[2].ref
        assert located.resolved_by == "aria"

    @pytest.mark.asyncio
    async def test_text_candidate(self, resolver, login_page):
        located = await resolver.locate(1, {"candidates": [{"type": "text", "text": "forgot password"}]})
        assert located.ref == login_page[3].ref

    @pytest.mark.asyncio
    async def test_templates_in_selectors(self, resolver, login_page):
        located = await resolver.locate(1, {"candidates": [{"type": "css", "selector": "#{field}"}]}, variables={"field": "password"})
        assert located.ref == login_page[1].ref

    @pytest.mark.asyncio
    async def test_ambiguous_css_skipped(self, resolver):
        resolver.browser.add(FakeElement("div", "x", [".row"]), FakeElement("div", "y", [".row"]))
        assert await resolver.locate(1, {"candidates": [{"type": "css", "selector": ".row"}]}) is None

    @pytest.mark.asyncio
    async def test_hidden_matches_ignored(self):
        browser = FakeBrowser([FakeElement("div", "", [".hint"], visible=False)])
        assert await TargetResolver(browser).locate(1, {"selector": ".hint"}) is None

    @pytest.mark.asyncio
    async def test_bare_selector_target(self, resolver, login_page):
        located = await resolver.locate(1, {"selector": "#email"})
        assert located.ref == login_page[0].ref

    @pytest.mark.asyncio
    async def test_empty_target(self, resolver):
        assert await resolver.locate(1, None) is None
        assert await resolver.locate(1, {}) is None


class TestMatchText:
    """Test fuzzy text matching."""

    @pytest.fixture
    def resolver(self):
        return TargetResolver(FakeBrowser())

    def test_exact_beats_substring(self, resolver):
        elements = [ElementMatch("e1", "button", "Save"), ElementMatch("e2", "button", "Save draft")]
        assert resolver.match_text(elements, "save").ref == "e1"

    def test_unique_substring(self, resolver):
        elements = [ElementMatch("e1", "a", "Home"), ElementMatch("e2", "a", "Contact us today")]
        assert resolver.match_text(elements, "contact").ref == "e2"

    def test_tag_hint_narrows(self, resolver):
        elements = [ElementMatch("e1", "span", "Delete"), ElementMatch("e2", "button", "Delete")]
        assert resolver.match_text(elements, "Delete", tag_hint="button").ref == "e2"

    def test_exact_mode_rejects_partial(self, resolver):
        elements = [ElementMatch("e1", "a", "Contact us")]
        assert resolver.match_text(elements, "Contact", exact=True) is None

    def test_similarity_threshold(self, resolver):
        elements = [ElementMatch("e1", "button", "Checkout")]
        assert resolver.match_text(elements, "Chekout").ref == "e1"
        assert resolver.match_text(elements, "Logout now please") is None
