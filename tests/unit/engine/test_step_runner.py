"""
Tests for StepRunner - policies wrapped around one step.
"""

import pytest

from flow_replay.config import ReplaySettings
from flow_replay.engine.after_scripts import AfterScriptQueue
from flow_replay.engine.execution_mode import ExecutionModeConfig
from flow_replay.engine.plugins import BreakpointPlugin, HookControl, PluginManager, RunPlugin
from flow_replay.engine.step_executor import LegacyStepExecutor
from flow_replay.engine.step_runner import StepRunner
from flow_replay.models.step import Step


def make_runner(plugins=None, screenshot_on_failure=False):
    return StepRunner(
        LegacyStepExecutor(),
        PluginManager(plugins or []),
        AfterScriptQueue(),
        ExecutionModeConfig(),
        ReplaySettings(screenshot_on_failure=screenshot_on_failure),
    )


def step(data):
    return Step.from_dict(data)


CLICK_LOGIN = {"id": "login", "type": "click", "target": {"selector": "#login"}}
CLICK_MISSING = {"id": "missing", "type": "click", "target": {"selector": "#nope"}}


# =============================================================================
# SUCCESS AND RETRY
# =============================================================================

class TestSuccess:
    """Test successful steps."""

    @pytest.mark.asyncio
    async def test_success_logged(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step(CLICK_LOGIN))
        assert outcome.success
        assert outcome.executor == "legacy"
        assert [e.status for e in ctx.logger.get_logs()] == ["success"]

    @pytest.mark.asyncio
    async def test_retry_logs_each_retry(self, browser, make_context):
        browser.fail_clicks = 2
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({**CLICK_LOGIN, "retry": {"count": 2}}))
        assert outcome.success
        assert len(browser.calls_named("click")) == 3
        assert ctx.logger.count("retrying") == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, browser, make_context):
        browser.fail_clicks = 5
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({**CLICK_LOGIN, "retry": {"count": 1}}))
        assert outcome.failed
        assert len(browser.calls_named("click")) == 2

    @pytest.mark.asyncio
    async def test_validation_failure_not_retried(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({"id": "f", "type": "fill", "target": {"selector": "#email"}, "retry": {"count": 3}}))
        assert outcome.failed
        assert ctx.logger.count("retrying") == 0

    @pytest.mark.asyncio
    async def test_navigate_waits_for_load(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({"id": "go", "type": "navigate", "url": "https://example.com/a"}))
        assert outcome.success
        assert browser.tabs[1].url == "https://example.com/a"


# =============================================================================
# FAILURE ROUTING
# =============================================================================

class TestFailure:
    """Test failure logging and onError decisions."""

    @pytest.mark.asyncio
    async def test_failed_entry(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step(CLICK_MISSING))
        assert outcome.failed
        assert outcome.on_error.kind == "goto"
        assert ctx.logger.first_failure().step_id == "missing"
        assert ctx.logger.first_failure().screenshot_base64 is None

    @pytest.mark.asyncio
    async def test_failure_screenshot(self, browser, make_context):
        ctx = make_context(browser)
        await make_runner().run(ctx, step({**CLICK_MISSING, "screenshotOnFail": True}))
        assert ctx.logger.first_failure().screenshot_base64 == "c2NyZWVuc2hvdA=="

    @pytest.mark.asyncio
    async def test_default_screenshot_setting(self, browser, make_context):
        ctx = make_context(browser)
        await make_runner(screenshot_on_failure=True).run(ctx, step(CLICK_MISSING))
        assert browser.calls_named("screenshot")

    @pytest.mark.asyncio
    async def test_continue_with_warning(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({**CLICK_MISSING, "onError": {"kind": "continue", "level": "warning"}}))
        assert outcome.success
        assert outcome.error
        assert [e.status for e in ctx.logger.get_logs()] == ["warning"]

    @pytest.mark.asyncio
    async def test_continue_with_error_level_fails(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({**CLICK_MISSING, "onError": {"kind": "continue", "level": "error"}}))
        assert outcome.failed
        assert outcome.on_error.kind == "continue"

    @pytest.mark.asyncio
    async def test_step_timeout(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({"id": "slow", "type": "delay", "ms": 2000, "timeoutMs": 100}))
        assert outcome.failed
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_on_error_hook_can_pause(self, browser, make_context):
        class PauseOnError(RunPlugin):
            async def on_error(self, run_id, step, error):
                return HookControl(pause=True)

        ctx = make_context(browser)
        outcome = await make_runner([PauseOnError()]).run(ctx, step(CLICK_MISSING))
        assert outcome.paused


# =============================================================================
# HOOKS
# =============================================================================

class TestHooks:
    """Test skip, pause and disabled steps."""

    @pytest.mark.asyncio
    async def test_breakpoint_pauses(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner([BreakpointPlugin(["login"])]).run(ctx, step(CLICK_LOGIN))
        assert outcome.paused
        assert browser.calls_named("click") == []

    @pytest.mark.asyncio
    async def test_disabled_step_skipped(self, browser, make_context):
        ctx = make_context(browser)
        outcome = await make_runner().run(ctx, step({**CLICK_LOGIN, "disabled": True}))
        assert outcome.status == "skipped"
        assert ctx.logger.get_logs()[0].message == "disabled"


# =============================================================================
# DEFERRED SCRIPTS
# =============================================================================

class TestDeferredScripts:
    """Test scripts with when=after."""

    @pytest.mark.asyncio
    async def test_runs_after_next_success(self, browser, make_context):
        browser.scripts["return location.href"] = "https://example.com/home"
        ctx = make_context(browser)
        runner = make_runner()

        await runner.run(ctx, step({"id": "s", "type": "script", "code": "return location.href", "when": "after", "saveAs": "landing"}))
        assert browser.calls_named("evaluate") == []
        assert len(runner.after_scripts) == 1

        await runner.run(ctx, step(CLICK_LOGIN))
        assert ctx.vars["landing"] == "https://example.com/home"
        assert len(runner.after_scripts) == 0

    @pytest.mark.asyncio
    async def test_not_run_after_failure(self, browser, make_context):
        ctx = make_context(browser)
        runner = make_runner()
        await runner.run(ctx, step({"id": "s", "type": "script", "code": "return 1", "when": "after"}))
        await runner.run(ctx, step(CLICK_MISSING))
        assert len(runner.after_scripts) == 1
