"""
Control-Flow Runner - executes foreach and while directives.

The runner does not walk graphs itself; it is handed a ``run_subflow``
callable by the orchestrator and decides how often, in which variable scope
and with what parallelism to call it.

Subflow runs report one of ``ok``, ``failed`` or ``paused``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence

from flow_replay.engine.conditions import evaluate_condition
from flow_replay.engine.context import StepContext
from flow_replay.exceptions import FlowValidationError
from flow_replay.models.results import ControlDirective

logger = logging.getLogger(__name__)

OK = "ok"
FAILED = "failed"
PAUSED = "paused"

RunSubflow = Callable[[str, StepContext], Awaitable[str]]


def combine_statuses(statuses: Sequence[str]) -> str:
    """paused beats failed beats ok."""
    if PAUSED in statuses:
        return PAUSED
    if FAILED in statuses:
        return FAILED
    return OK


class ControlFlowRunner:
    """
    Example:
        >>> runner = ControlFlowRunner(orchestrator.run_subflow)
        >>> await runner.run(ControlDirective(kind="while", subflow_id="poll", condition=..., max_iterations=5), ctx)
        'ok'
    """

    def __init__(self, run_subflow: RunSubflow, is_paused: Callable[[], bool] = lambda: False):
        self.run_subflow = run_subflow
        self.is_paused = is_paused

    async def run(self, directive: ControlDirective, ctx: StepContext) -> str:
        if directive.kind == "foreach":
            return await self.run_foreach(directive, ctx)
        if directive.kind == "while":
            return await self.run_while(directive, ctx)
        ctx.logger.failed(directive.subflow_id, f"Unknown control directive '{directive.kind}'")
        return FAILED

    async def run_foreach(self, directive: ControlDirective, ctx: StepContext) -> str:
        """
        Run the subflow once per list element.

        Each iteration gets a child variable scope in which ``item_var`` is
        private; its other writes are merged back when the iteration ends.
        With concurrency 1 tab and frame changes carry over between
        iterations and back to the caller.
        """
        items = ctx.vars.get_path(directive.list_var) if directive.list_var else None
        if items is None:
            items = []
        if not isinstance(items, (list, tuple)):
            ctx.logger.failed(directive.subflow_id, f"foreach variable '{directive.list_var}' is not a list")
            return FAILED
        if not items:
            ctx.logger.info(directive.subflow_id, f"foreach over empty '{directive.list_var}'")
            return OK

        concurrency = max(1, int(directive.concurrency or 1))
        logger.debug(f"foreach {directive.list_var}: {len(items)} item(s), concurrency {concurrency}")

        if concurrency == 1:
            for index, item in enumerate(items):
                if self.is_paused():
                    return PAUSED
                status = await self._iteration(directive, ctx, item, index, sync_tab=True)
                if status != OK:
                    return status
            return OK

        semaphore = asyncio.Semaphore(concurrency)

        async def bounded(index: int, item) -> str:
            async with semaphore:
                if self.is_paused():
                    return PAUSED
                return await self._iteration(directive, ctx, item, index, sync_tab=False)

        tasks = [asyncio.create_task(bounded(i, item)) for i, item in enumerate(items)]
        try:
            statuses: List[str] = await asyncio.gather(*tasks)
        except BaseException:
            # No branch may keep driving the browser once the loop has failed
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return combine_statuses(statuses)

    async def _iteration(self, directive: ControlDirective, ctx: StepContext, item, index: int, sync_tab: bool) -> str:
        scope = ctx.vars.child(private=[directive.item_var])
        scope[directive.item_var] = item
        branch = ctx.fork(scope)
        try:
            status = await self.run_subflow(directive.subflow_id, branch)
        finally:
            scope.merge_into_parent()
        if sync_tab:
            ctx.tab_id = branch.tab_id
            ctx.frame_id = branch.frame_id
        if status != OK:
            logger.info(f"foreach {directive.subflow_id} stopped at item {index}: {status}")
        return status

    async def run_while(self, directive: ControlDirective, ctx: StepContext) -> str:
        """
        Run the subflow while the condition holds, re-evaluated against the
        live variable store before every iteration, at most
        ``max_iterations`` times.
        """
        cap = directive.max_iterations if directive.max_iterations is not None else ctx.settings.max_loop_iterations
        for iteration in range(cap):
            if self.is_paused():
                return PAUSED
            try:
                holds = evaluate_condition(directive.condition, ctx.vars)
            except FlowValidationError as e:
                ctx.logger.failed(directive.subflow_id, f"while condition error: {e.message}")
                return FAILED
            if not holds:
                return OK
            status = await self.run_subflow(directive.subflow_id, ctx)
            if status != OK:
                return status
        ctx.logger.warning(directive.subflow_id, f"while stopped after maxIterations={cap}")
        return OK
