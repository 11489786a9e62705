"""
Tests for the in-memory run state registry.
"""

import pytest

from flow_replay.engine.run_state import InMemoryRunStateRegistry, RunState


class TestInMemoryRunStateRegistry:
    """Test tracking runs in progress."""

    @pytest.mark.asyncio
    async def test_add_update_delete(self):
        registry = InMemoryRunStateRegistry()
        await registry.add(RunState(run_id="r1", flow_id="f1", tab_id=1))

        state = await registry.update("r1", status="paused", current_node_id="n3")
        assert state.status == "paused"
        assert (await registry.get("r1")).current_node_id == "n3"
        assert len(await registry.list()) == 1

        await registry.delete("r1")
        assert await registry.get("r1") is None

    @pytest.mark.asyncio
    async def test_update_unknown_run(self):
        registry = InMemoryRunStateRegistry()
        assert await registry.update("missing", status="failed") is None
