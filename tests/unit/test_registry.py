"""
Tests for the action registry.
"""

from typing import Any, Dict

import pytest

from flow_replay.exceptions import ActionError, ErrorCode, UnsupportedActionError
from flow_replay.interfaces.action import ActionExecutionContext, ActionType, BaseActionHandler
from flow_replay.models.flow import Action
from flow_replay.models.results import ExecutionResult
from flow_replay.registry import ActionRegistry, create_replay_action_registry, registered_action_types
from tests.conftest import FakeBrowser


class FlakyHandler(BaseActionHandler):
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures: int, retryable: bool = True):
        self.failures = failures
        self.retryable = retryable
        self.calls = 0

    @property
    def action_type(self) -> ActionType:
        return ActionType.EXTRACT

    @property
    def description(self) -> str:
        return "Flaky"

    async def _run(self, ctx: ActionExecutionContext, action: Action, params: Dict[str, Any]) -> ExecutionResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise ActionError(f"flake {self.calls}", retryable=self.retryable)
        return ExecutionResult.ok(output=self.calls)


def action(action_type, params=None, policy=None):
    return Action.model_validate({"id": "a1", "type": action_type, "params": params or {}, "policy": policy})


@pytest.fixture
def action_ctx(make_context):
    return make_context(FakeBrowser()).action_context("a1")


class TestRegistration:
    """Test handler registration and lookup."""

    def test_builtin_types(self):
        registry = create_replay_action_registry()
        types = registry.list_types()
        for t in ("navigate", "click", "fill", "wait", "assert", "http", "if", "foreach", "while", "handleDownload"):
            assert t in types
        assert "executeFlow" not in types
        assert set(types) <= set(registered_action_types())

    def test_unknown_type(self):
        with pytest.raises(UnsupportedActionError):
            ActionRegistry().get("teleport")

    def test_duplicate_registration(self):
        registry = ActionRegistry()
        registry.register(FlakyHandler(0))
        with pytest.raises(ValueError):
            registry.register(FlakyHandler(0))
        registry.register(FlakyHandler(1), replace=True)
        assert registry.get(ActionType.EXTRACT).failures == 1

    def test_extra_handlers_replace_builtins(self):
        flaky = FlakyHandler(0)
        registry = create_replay_action_registry([flaky])
        assert registry.get("extract") is flaky

    def test_unregister(self):
        registry = create_replay_action_registry()
        registry.unregister("fill")
        assert not registry.has("fill")


class TestExecute:
    """Test policy application around handlers."""

    @pytest.mark.asyncio
    async def test_validation_error(self, action_ctx):
        registry = create_replay_action_registry()
        result = await registry.execute(action_ctx, action("navigate"))
        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert result.error.retryable is False

    @pytest.mark.asyncio
    async def test_retry_policy(self, action_ctx):
        flaky = FlakyHandler(2)
        registry = ActionRegistry()
        registry.register(flaky)
        result = await registry.execute(action_ctx, action("extract", policy={"retry": {"retries": 2}}))
        assert result.success
        assert result.output == 3

    @pytest.mark.asyncio
    async def test_non_retryable_not_retried(self, action_ctx):
        flaky = FlakyHandler(1, retryable=False)
        registry = ActionRegistry()
        registry.register(flaky)
        result = await registry.execute(action_ctx, action("extract", policy={"retry": {"retries": 3}}))
        assert not result.success
        assert flaky.calls == 1

    @pytest.mark.asyncio
    async def test_attempt_timeout(self, action_ctx):
        registry = create_replay_action_registry()
        result = await registry.execute(action_ctx, action("delay", {"ms": 2000}, {"timeout": {"ms": 100}}))
        assert result.error.code == ErrorCode.TIMEOUT
        assert result.duration_ms < 2000

    @pytest.mark.asyncio
    async def test_unsupported_raises(self, action_ctx):
        with pytest.raises(UnsupportedActionError):
            await ActionRegistry().execute(action_ctx, action("click"))
