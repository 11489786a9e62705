"""
After-Script Queue - scripts deferred with ``when: "after"``.

A deferred script runs once the next step has succeeded, in the tab and
frame active at that point.
"""

import logging
from typing import Any, Dict, List

from flow_replay.engine.context import StepContext
from flow_replay.actions.common import store_output

logger = logging.getLogger(__name__)


class AfterScriptQueue:
    def __init__(self) -> None:
        self._queue: List[Dict[str, Any]] = []

    def enqueue(self, script: Dict[str, Any]) -> None:
        self._queue.append(script)

    def __len__(self) -> int:
        return len(self._queue)

    async def flush(self, ctx: StepContext) -> int:
        """
        Run every queued script. A failing script is logged as a warning
        and does not fail the step that triggered the flush.

        Returns:
            Number of scripts that ran successfully
        """
        queued, self._queue = self._queue, []
        ran = 0
        for script in queued:
            step_id = script.get("step_id", "after-script")
            try:
                value = await ctx.browser.evaluate(ctx.tab_id, script["code"], script.get("args"), ctx.frame_id)
            except Exception as e:
                ctx.logger.warning(step_id, f"After-script failed: {e}")
                continue
            action_ctx = ctx.action_context(step_id)
            store_output(action_ctx, script.get("params") or {}, value)
            ran += 1
        return ran
