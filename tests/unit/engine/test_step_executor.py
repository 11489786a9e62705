"""
Tests for the legacy, actions and hybrid step executors.
"""

import pytest

from flow_replay.engine.execution_mode import ExecutionModeConfig
from flow_replay.engine.legacy_nodes import supported_legacy_types
from flow_replay.engine.step_executor import (
    ActionsStepExecutor,
    HybridStepExecutor,
    LegacyStepExecutor,
    create_executor,
)
from flow_replay.exceptions import ErrorCode, UnsupportedActionError
from flow_replay.models.step import Step
from flow_replay.registry import create_replay_action_registry


def click_login(**extra):
    return Step.from_dict({"id": "login", "type": "click", "target": {"selector": "#login"}, **extra})


@pytest.fixture
def registry():
    return create_replay_action_registry()


# =============================================================================
# LEGACY
# =============================================================================

class TestLegacyStepExecutor:
    """Test the direct dispatch table."""

    def test_covers_every_type(self):
        types = supported_legacy_types()
        for step_type in ("click", "navigate", "foreach", "triggerEvent", "setAttribute", "loopElements", "executeFlow"):
            assert step_type in types

    @pytest.mark.asyncio
    async def test_click(self, browser, login_page, make_context):
        outcome = await LegacyStepExecutor().execute(make_context(browser), click_login())
        assert outcome.executor == "legacy"
        assert outcome.result.success
        assert browser.calls_named("click") == [("click", login_page[2].ref, 1)]

    @pytest.mark.asyncio
    async def test_unknown_type(self, browser, make_context):
        outcome = await LegacyStepExecutor().execute(make_context(browser), Step(id="x", type="teleport"))
        assert outcome.result.error.code == ErrorCode.VALIDATION_ERROR
        assert outcome.result.error.retryable is False

    @pytest.mark.asyncio
    async def test_validation_runs_first(self, browser, make_context):
        step = Step.from_dict({"id": "f", "type": "fill", "target": {"selector": "#email"}})
        outcome = await LegacyStepExecutor().execute(make_context(browser), step)
        assert "value" in outcome.result.error.message
        assert browser.calls_named("fill") == []

    @pytest.mark.asyncio
    async def test_set_attribute(self, browser, login_page, make_context):
        step = Step.from_dict({
            "id": "attr",
            "type": "setAttribute",
            "target": {"selector": "#email"},
            "name": "data-test",
            "value": "{tag}",
        })
        outcome = await LegacyStepExecutor().execute(make_context(browser, {"tag": "primary"}), step)
        assert outcome.result.success
        assert login_page[0].attributes["data-test"] == "primary"

    @pytest.mark.asyncio
    async def test_trigger_event(self, browser, login_page, make_context):
        step = Step.from_dict({"id": "ev", "type": "triggerEvent", "target": {"selector": "#email"}, "event": "change"})
        await LegacyStepExecutor().execute(make_context(browser), step)
        assert browser.calls_named("dispatch_event") == [("dispatch_event", login_page[0].ref, "change")]

    @pytest.mark.asyncio
    async def test_loop_elements_returns_directive(self, browser, make_context):
        step = Step.from_dict({"id": "loop", "type": "loopElements", "selector": "#login", "subflowId": "each"})
        ctx = make_context(browser)
        outcome = await LegacyStepExecutor().execute(ctx, step)
        assert outcome.result.control.kind == "foreach"
        assert outcome.result.control.item_var == "element"
        assert ctx.vars["elements"][0]["text"] == "Sign in"

    @pytest.mark.asyncio
    async def test_execute_flow_without_store(self, browser, make_context):
        step = Step.from_dict({"id": "sub", "type": "executeFlow", "flowId": "other"})
        outcome = await LegacyStepExecutor().execute(make_context(browser), step)
        assert not outcome.result.success
        assert "flow store" in outcome.result.error.message


# =============================================================================
# ACTIONS
# =============================================================================

class TestActionsStepExecutor:
    """Test strict registry dispatch."""

    @pytest.mark.asyncio
    async def test_legacy_only_type_unsupported(self, browser, make_context, registry):
        executor = ActionsStepExecutor(registry, ExecutionModeConfig(mode="actions"))
        with pytest.raises(UnsupportedActionError):
            await executor.execute(make_context(browser), Step(id="x", type="executeFlow", params={"flowId": "f"}))

    @pytest.mark.asyncio
    async def test_registry_retry_stripped(self, browser, make_context, registry):
        browser.fail_clicks = 1
        executor = ActionsStepExecutor(registry, ExecutionModeConfig(mode="actions"))
        outcome = await executor.execute(make_context(browser), click_login(retry={"count": 3}))
        assert not outcome.result.success
        assert len(browser.calls_named("click")) == 1

    @pytest.mark.asyncio
    async def test_registry_retry_kept_when_configured(self, browser, make_context, registry):
        browser.fail_clicks = 1
        config = ExecutionModeConfig(mode="actions", skip_actions_retry=False)
        outcome = await ActionsStepExecutor(registry, config).execute(make_context(browser), click_login(retry={"count": 3}))
        assert outcome.result.success
        assert len(browser.calls_named("click")) == 2

    @pytest.mark.asyncio
    async def test_tab_changes_synced(self, browser, make_context, registry):
        ctx = make_context(browser)
        executor = ActionsStepExecutor(registry, ExecutionModeConfig(mode="actions"))
        await executor.execute(ctx, Step.from_dict({"id": "tab", "type": "openTab", "url": "https://example.com/new"}))
        assert ctx.tab_id == browser.active
        assert ctx.tab_id != 1


# =============================================================================
# HYBRID
# =============================================================================

class TestHybridStepExecutor:
    """Test routing and fallback."""

    @pytest.mark.asyncio
    async def test_routes_by_type(self, browser, make_context, registry):
        executor = HybridStepExecutor(registry, ExecutionModeConfig(mode="hybrid"))
        ctx = make_context(browser)
        fill = Step.from_dict({"id": "f", "type": "fill", "target": {"selector": "#email"}, "value": "a@b.c"})
        assert (await executor.execute(ctx, fill)).executor == "actions"
        assert (await executor.execute(ctx, click_login())).executor == "legacy"

    @pytest.mark.asyncio
    async def test_falls_back_when_handler_missing(self, browser, make_context, registry):
        registry.unregister("fill")
        executor = HybridStepExecutor(registry, ExecutionModeConfig(mode="hybrid"))
        ctx = make_context(browser)
        fill = Step.from_dict({"id": "f", "type": "fill", "target": {"selector": "#email"}, "value": "a@b.c"})
        outcome = await executor.execute(ctx, fill)
        assert outcome.executor == "legacy"
        assert outcome.fallback is True
        assert outcome.result.success
        assert "Fallback" in ctx.logger.get_logs()[0].message


class TestCreateExecutor:
    """Test executor construction."""

    def test_modes(self, registry):
        assert isinstance(create_executor(ExecutionModeConfig(mode="legacy")), LegacyStepExecutor)
        assert isinstance(create_executor(ExecutionModeConfig(mode="actions"), registry), ActionsStepExecutor)
        assert isinstance(create_executor(ExecutionModeConfig(mode="hybrid"), registry), HybridStepExecutor)

    def test_registry_required(self):
        with pytest.raises(ValueError):
            create_executor(ExecutionModeConfig(mode="hybrid"))
