"""
Tests for the control-flow runner (foreach, while).
"""

import asyncio

import pytest

from flow_replay.engine.control_flow import FAILED, OK, PAUSED, ControlFlowRunner, combine_statuses
from flow_replay.exceptions import GlobalTimeoutError
from flow_replay.models.results import ControlDirective
from tests.conftest import FakeBrowser


def test_combine_statuses():
    assert combine_statuses([OK, OK]) == OK
    assert combine_statuses([OK, FAILED]) == FAILED
    assert combine_statuses([FAILED, PAUSED]) == PAUSED


# =============================================================================
# FOREACH
# =============================================================================

class TestForeach:
    """Test per-item subflow runs."""

    @pytest.mark.asyncio
    async def test_sequential_items_and_merge(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": ["a", "b", "c"]})
        seen = []

        async def run_subflow(subflow_id, branch):
            seen.append(branch.vars["row"])
            branch.vars["last"] = branch.vars["row"]
            return OK

        runner = ControlFlowRunner(run_subflow)
        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows", item_var="row")
        assert await runner.run(directive, ctx) == OK
        assert seen == ["a", "b", "c"]
        assert ctx.vars["last"] == "c"
        assert "row" not in ctx.vars

    @pytest.mark.asyncio
    async def test_tab_changes_carry_over(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": [1]})

        async def run_subflow(subflow_id, branch):
            branch.tab_id = 7
            return OK

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows")
        await ControlFlowRunner(run_subflow).run(directive, ctx)
        assert ctx.tab_id == 7

    @pytest.mark.asyncio
    async def test_failure_stops_iteration(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": [1, 2, 3]})
        seen = []

        async def run_subflow(subflow_id, branch):
            seen.append(branch.vars["item"])
            return FAILED if branch.vars["item"] == 2 else OK

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows")
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == FAILED
        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": list(range(6))})
        active = 0
        peak = 0

        async def run_subflow(subflow_id, branch):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return OK

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows", concurrency=2)
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == OK
        assert peak == 2

    @pytest.mark.asyncio
    async def test_empty_list(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": []})

        async def run_subflow(subflow_id, branch):
            raise AssertionError("should not run")

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows")
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == OK

    @pytest.mark.asyncio
    async def test_not_a_list(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": "abc"})

        async def run_subflow(subflow_id, branch):
            return OK

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows")
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == FAILED
        assert ctx.logger.first_failure().step_id == "body"

    @pytest.mark.asyncio
    async def test_deadline_cancels_sibling_branches(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": [0, 1, 2]})
        cancelled = []

        async def run_subflow(subflow_id, branch):
            item = branch.vars["item"]
            if item == 0:
                branch.vars["reached"] = True
                await asyncio.sleep(0.01)
                raise GlobalTimeoutError(10)
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.append(item)
                raise
            return OK

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows", concurrency=3)
        with pytest.raises(GlobalTimeoutError):
            await asyncio.wait_for(ControlFlowRunner(run_subflow).run(directive, ctx), timeout=2)
        assert sorted(cancelled) == [1, 2]
        assert ctx.vars["reached"] is True

    @pytest.mark.asyncio
    async def test_writes_merged_when_subflow_raises(self, make_context):
        ctx = make_context(FakeBrowser(), {"rows": ["a"]})

        async def run_subflow(subflow_id, branch):
            branch.vars["partial"] = branch.vars["item"]
            raise GlobalTimeoutError(10)

        directive = ControlDirective(kind="foreach", subflow_id="body", list_var="rows")
        with pytest.raises(GlobalTimeoutError):
            await ControlFlowRunner(run_subflow).run(directive, ctx)
        assert ctx.vars["partial"] == "a"
        assert "item" not in ctx.vars


# =============================================================================
# WHILE
# =============================================================================

class TestWhile:
    """Test condition-driven loops."""

    @pytest.mark.asyncio
    async def test_runs_until_condition_false(self, make_context):
        ctx = make_context(FakeBrowser(), {"count": 0})

        async def run_subflow(subflow_id, branch):
            branch.vars["count"] += 1
            return OK

        directive = ControlDirective(kind="while", subflow_id="body", condition={"kind": "expr", "expr": "count < 3"})
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == OK
        assert ctx.vars["count"] == 3

    @pytest.mark.asyncio
    async def test_cap_warns_and_returns_ok(self, make_context):
        ctx = make_context(FakeBrowser(), {"count": 0})

        async def run_subflow(subflow_id, branch):
            branch.vars["count"] += 1
            return OK

        directive = ControlDirective(kind="while", subflow_id="body", condition="true", max_iterations=4)
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == OK
        assert ctx.vars["count"] == 4
        assert ctx.logger.get_logs()[-1].status == "warning"

    @pytest.mark.asyncio
    async def test_bad_condition_fails(self, make_context):
        ctx = make_context(FakeBrowser())

        async def run_subflow(subflow_id, branch):
            return OK

        directive = ControlDirective(kind="while", subflow_id="body", condition="count <")
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == FAILED

    @pytest.mark.asyncio
    async def test_pause_stops_loop(self, make_context):
        ctx = make_context(FakeBrowser())

        async def run_subflow(subflow_id, branch):
            return OK

        runner = ControlFlowRunner(run_subflow, is_paused=lambda: True)
        directive = ControlDirective(kind="while", subflow_id="body", condition="true")
        assert await runner.run(directive, ctx) == PAUSED

    @pytest.mark.asyncio
    async def test_unknown_directive(self, make_context):
        ctx = make_context(FakeBrowser())

        async def run_subflow(subflow_id, branch):
            return OK

        directive = ControlDirective(kind="repeat", subflow_id="body")
        assert await ControlFlowRunner(run_subflow).run(directive, ctx) == FAILED
