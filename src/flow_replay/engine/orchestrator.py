"""
Orchestrator - runs one flow from preparation to cleanup.

States: preparing -> running -> paused | completed | failed.

Preparation checks the graph, seeds variables, acquires the tab and applies
binding constraints. Running walks the graph node by node through the step
runner, following edge labels and handing loop directives to the
control-flow runner. Cleanup always runs: network capture summary, log
flush, run record and run-state bookkeeping.

Example:
    >>> result = await run_flow(flow, browser, RunOptions(args={"q": "cats"}))
    >>> result.success, result.summary.total
    (True, 3)
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from flow_replay.config import get_settings
from flow_replay.config.settings import Settings
from flow_replay.engine.adapter import node_to_step
from flow_replay.engine.after_scripts import AfterScriptQueue
from flow_replay.engine.context import StepContext
from flow_replay.engine.control_flow import FAILED, OK, PAUSED, ControlFlowRunner
from flow_replay.engine.execution_mode import ExecutionModeConfig
from flow_replay.engine.graph import (
    TRIGGER_TYPE,
    default_edges,
    find_edge,
    find_error_edge,
    find_start_node,
    has_cycle,
    out_edge_map,
    outgoing_labels,
    topo_order,
    validate_graph,
)
from flow_replay.engine.plugins import BreakpointPlugin, PluginManager, RunPlugin
from flow_replay.engine.run_logger import RunLogger, RunLogSink
from flow_replay.engine.run_state import IRunStateRegistry, RunState
from flow_replay.engine.step_executor import create_executor
from flow_replay.engine.step_runner import StepRunner
from flow_replay.engine.target_resolver import TargetResolver
from flow_replay.engine.variables import VariableStore
from flow_replay.exceptions import ActionError, DagError, ErrorCode, FlowReplayError, GlobalTimeoutError
from flow_replay.interfaces.action import ActionExecutionContext
from flow_replay.interfaces.browser import IBrowserControl
from flow_replay.models.flow import DEFAULT_LABEL, Action, Edge, Flow, Subflow
from flow_replay.models.results import RunLogEntry, RunResult, RunSummary
from flow_replay.registry import ActionRegistry, create_replay_action_registry
from flow_replay.storage.base import IFlowStore, IRunRecordStore

logger = logging.getLogger(__name__)

# Step ids of run-level log entries
BINDING_CHECK = "binding-check"
DAG_REQUIRED = "dag-required"
DAG_CYCLE = "dag-cycle"
DAG_INVALID = "dag-invalid"
GLOBAL_TIMEOUT = "global-timeout"
LOOP_GUARD = "loop-guard"
NETWORK_CAPTURE = "network-capture"
VARIABLE_COLLECT = "variable-collect"
PREPARE = "prepare"
RUN_RECORD = "run-record"
RUN_ERROR = "run-error"

NETWORK_SNIPPET_TYPES = ("XHR", "Fetch")


@dataclass
class RunOptions:
    """
    Per-run options. Unset values fall back to the ``replay``, ``engine`` and
    ``execution`` settings sections.

    Attributes:
        args: Call-time variables, applied over flow defaults
        start_url: URL to open first; also disables binding checks
        tab_target: current or new
        tab_id: Run in this tab without acquiring one
        refresh: Reload the current tab before running
        start_node_id: Resume at this node
        timeout_ms: Global deadline for the whole run
        execution_mode: legacy, hybrid or actions
        capture_network: Record and summarize XHR/Fetch requests
        return_logs: Include log entries in the result
        screenshot_on_failure: Default for steps without ``screenshotOnFail``
        breakpoints: Step ids to pause before
        plugins: Run plugins
        log_sink: Live log receiver
        flow_store: Store used by executeFlow steps
        run_record_store: Where finished runs are recorded
        run_states: Registry of runs in progress
        registry: Action registry for the actions/hybrid executors
        settings: Settings overriding the global ones
    """
    args: Dict[str, Any] = field(default_factory=dict)
    start_url: Optional[str] = None
    tab_target: Optional[str] = None
    tab_id: Optional[int] = None
    refresh: Optional[bool] = None
    start_node_id: Optional[str] = None
    timeout_ms: Optional[int] = None
    execution_mode: Optional[str] = None
    capture_network: Optional[bool] = None
    return_logs: Optional[bool] = None
    screenshot_on_failure: Optional[bool] = None
    breakpoints: List[str] = field(default_factory=list)
    plugins: List[RunPlugin] = field(default_factory=list)
    log_sink: Optional[RunLogSink] = None
    flow_store: Optional[IFlowStore] = None
    run_record_store: Optional[IRunRecordStore] = None
    run_states: Optional[IRunStateRegistry] = None
    registry: Optional[ActionRegistry] = None
    settings: Optional[Settings] = None


def binding_matches(bindings: Sequence[Any], url: str) -> bool:
    """Whether ``url`` satisfies at least one domain/path/url binding."""
    parsed = urlparse(url or "")
    for binding in bindings:
        if binding.type == "domain" and binding.value in (parsed.hostname or ""):
            return True
        if binding.type == "path" and parsed.path.startswith(binding.value):
            return True
        if binding.type == "url" and (url or "").startswith(binding.value):
            return True
    return False


class ExecutionOrchestrator:
    """
    Owns all mutable state of one run: tab and frame identity, variables,
    counters and the paused flag.
    """

    def __init__(self, flow: Flow, browser: IBrowserControl, options: Optional[RunOptions] = None):
        self.flow = flow
        self.browser = browser
        self.options = options or RunOptions()

        settings = self.options.settings or get_settings()
        replay = settings.replay
        if self.options.screenshot_on_failure is not None:
            replay = replay.model_copy(update={"screenshot_on_failure": self.options.screenshot_on_failure})
        engine = settings.engine
        if self.options.timeout_ms is not None:
            engine = engine.model_copy(update={"global_timeout_ms": max(0, int(self.options.timeout_ms))})
        self.settings = settings
        self.engine = engine
        self.replay = replay

        self.run_id = f"run_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
        self.started_at = time.time()
        self._start = time.monotonic()
        self._deadline: Optional[float] = None
        if engine.global_timeout_ms > 0:
            self._deadline = self._start + engine.global_timeout_ms / 1000

        self.logger = RunLogger(self.run_id, self.options.log_sink)
        plugins = list(self.options.plugins)
        if self.options.breakpoints:
            plugins.append(BreakpointPlugin(self.options.breakpoints))
        self.plugins = PluginManager(plugins, self.logger)

        self.mode_config = ExecutionModeConfig.from_settings(settings.execution, self.options.execution_mode)
        registry = self.options.registry
        if registry is None and self.mode_config.mode != "legacy":
            registry = create_replay_action_registry()
        self.step_runner = StepRunner(
            create_executor(self.mode_config, registry),
            self.plugins,
            AfterScriptQueue(),
            self.mode_config,
            replay,
        )

        self.vars = VariableStore()
        self.ctx: Optional[StepContext] = None
        self.paused = False
        self.resume_node_id: Optional[str] = None
        self.executed = 0
        self.failed = 0
        self._fatal = False
        self._timed_out = False
        self._network_capture = False
        self._run_state_added = False
        self._active_flows: List[str] = [flow.id]

    # Budget

    def remaining_budget_ms(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, (self._deadline - time.monotonic()) * 1000)

    def _check_deadline(self) -> None:
        """
        Raises:
            GlobalTimeoutError: After logging a global-timeout entry
        """
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.logger.failed(GLOBAL_TIMEOUT, f"Global timeout reached after {self.engine.global_timeout_ms}ms")
            raise GlobalTimeoutError(self.engine.global_timeout_ms)

    # Lifecycle

    async def run(self) -> RunResult:
        """
        Prepare, traverse and clean up.

        Collaborator errors end the run with a fatal entry instead of
        propagating. Cleanup runs whatever happened, including cancellation.
        """
        stage = PREPARE
        try:
            await self._prepare()
            if not self._fatal:
                stage = RUN_ERROR
                await self._traverse()
        except GlobalTimeoutError as e:
            logger.warning(f"[{self.run_id}] {e.message}")
            self._timed_out = True
        except FlowReplayError as e:
            logger.error(f"[{self.run_id}] {stage} failed: {e}")
            self._fail_fatal(stage, f"Run aborted: {e.message}")
        finally:
            result = await self._cleanup()
        return result

    def _fail_fatal(self, step_id: str, message: str) -> None:
        self.logger.failed(step_id, message)
        self._fatal = True

    def _check_graph(self) -> bool:
        flow = self.flow
        if not flow.nodes:
            self._fail_fatal(DAG_REQUIRED, "Flow has no DAG nodes. Linear step lists are not supported; convert the flow to nodes/edges.")
            return False
        graphs = [("", flow.nodes, flow.edges)]
        graphs += [(f"subflow '{name}': ", sub.nodes, sub.edges) for name, sub in flow.subflows.items()]
        for prefix, nodes, edges in graphs:
            try:
                validate_graph(nodes, edges)
            except DagError as e:
                self._fail_fatal(DAG_INVALID, f"{prefix}{e.message}")
                return False
            if has_cycle(nodes, edges):
                self._fail_fatal(DAG_CYCLE, f"{prefix}Flow DAG contains a cycle. Break the cycle or use a while node.")
                return False
        return True

    def _seed_variables(self) -> None:
        for definition in self.flow.variables:
            if definition.default is not None:
                self.vars[definition.name] = definition.default
        self.vars.update(self.options.args)

    def _derive_start_url(self) -> Optional[str]:
        for node in topo_order(self.flow.nodes, default_edges(self.flow.edges)):
            if node.type == "navigate":
                url = node_to_step(node).params.get("url")
                if url:
                    return str(self.vars.resolve(url))
        return None

    async def _collect_missing_variables(self) -> None:
        missing = [
            v for v in self.flow.variables
            if v.is_required and self.vars.get(v.name) in (None, "")
        ]
        if not missing:
            return
        values = await self.browser.collect_variables([v.to_dict() for v in missing])
        if values:
            self.vars.update(values)
        else:
            self.logger.warning(VARIABLE_COLLECT, "Variable collection unavailable; using provided args and defaults")

    async def _prepare(self) -> None:
        if not self._check_graph():
            return
        self._seed_variables()

        options = self.options
        try:
            if options.tab_id is not None:
                tab_id = options.tab_id
            else:
                tab = await self.browser.ensure_tab(
                    options.tab_target or self.replay.tab_target,
                    options.start_url or self._derive_start_url(),
                    self.replay.refresh if options.refresh is None else options.refresh,
                )
                tab_id = tab.id
        except FlowReplayError as e:
            self._fail_fatal(PREPARE, f"Cannot acquire a tab: {e.message}")
            return

        self.ctx = StepContext(
            browser=self.browser,
            vars=self.vars,
            tab_id=tab_id,
            run_id=self.run_id,
            settings=self.engine,
            resolver=TargetResolver(self.browser),
            logger=self.logger,
            remaining_budget_ms=self.remaining_budget_ms,
            services={"execute_flow": self._execute_flow, "flow_store": options.flow_store},
        )

        if options.run_states is not None:
            await options.run_states.add(RunState(run_id=self.run_id, flow_id=self.flow.id, tab_id=tab_id))
            self._run_state_added = True

        await self.plugins.on_run_start(self.run_id, self.flow.id, self.vars)
        await self._collect_missing_variables()
        await self.logger.overlay_init(self.flow.name or self.flow.id)

        bindings = self.flow.meta.bindings
        if bindings and not options.start_url:
            tab = await self.browser.get_tab(tab_id)
            current_url = tab.url if tab else ""
            if not binding_matches(bindings, current_url):
                self._fail_fatal(BINDING_CHECK, "Flow binding mismatch. Provide a start URL or open a page matching the flow bindings.")
                return

        capture = self.replay.capture_network if options.capture_network is None else options.capture_network
        if capture:
            try:
                self._network_capture = await self.browser.start_network_capture(tab_id)
            except FlowReplayError as e:
                self.logger.warning(NETWORK_CAPTURE, f"Network capture start failed: {e.message}")
            else:
                if not self._network_capture:
                    self.logger.warning(NETWORK_CAPTURE, "Network capture is not supported by this browser binding")

    async def _traverse(self) -> None:
        start = self.options.start_node_id
        if not start or self.flow.get_node(start) is None:
            start = find_start_node(self.flow.nodes, self.flow.edges)
        node = self.flow.get_node(start) if start else None
        if node is not None:
            await self.logger.overlay_append(f"▶ start at {node.type} ({node.id})")
        await self._walk(self.ctx, self.flow.nodes, self.flow.edges, start, self.flow.subflows, top_level=True)

    async def _walk(
        self,
        ctx: StepContext,
        nodes: Sequence[Action],
        edges: Sequence[Edge],
        start_id: Optional[str],
        subflows: Dict[str, Subflow],
        top_level: bool = False,
    ) -> str:
        """
        Walk one graph from ``start_id`` until no edge applies.

        Returns:
            ok, failed or paused

        Raises:
            GlobalTimeoutError: When the run deadline passes
        """
        by_id = {node.id: node for node in nodes}
        outgoing = out_edge_map(edges)
        control_flow = ControlFlowRunner(
            lambda subflow_id, branch: self._run_subflow(subflows, subflow_id, branch),
            lambda: self.paused,
        )
        current = start_id
        iterations = 0

        while current:
            self._check_deadline()
            iterations += 1
            if iterations > self.engine.max_iterations:
                self.logger.failed(LOOP_GUARD, f"Exceeded {self.engine.max_iterations} iterations - possible cycle in DAG")
                if top_level:
                    self.failed += 1
                return FAILED

            node = by_id.get(current)
            if node is None:
                break
            if node.type == TRIGGER_TYPE:
                edge = find_edge(outgoing, node.id, DEFAULT_LABEL)
                if edge is None:
                    self.logger.warning(node.id, "Trigger node has no successor - nothing to execute")
                    break
                await self.logger.overlay_append(f"⏭ skip trigger ({node.id})")
                current = edge.to
                continue

            step = node_to_step(node)
            await self.logger.overlay_append(f"→ {step.type} ({step.id})")
            outcome = await self.step_runner.run(ctx, step)

            if outcome.paused:
                self.paused = True
                if top_level:
                    self.resume_node_id = current
                return PAUSED
            if top_level:
                self.executed += 1

            if outcome.failed:
                if top_level:
                    self.failed += 1
                self._check_deadline()
                next_id = self._route_failure(outgoing, current, outcome.on_error)
                if next_id is None:
                    return FAILED
                current = next_id
                continue

            if outcome.control is not None:
                status = await control_flow.run(outcome.control, ctx)
                if status == PAUSED:
                    self.paused = True
                    if top_level:
                        self.resume_node_id = current
                    return PAUSED
                if status == FAILED:
                    self.logger.failed(step.id, f"{step.type} subflow '{outcome.control.subflow_id}' failed")
                    if top_level:
                        self.failed += 1
                    self._check_deadline()
                    next_id = self._route_failure(outgoing, current, outcome.on_error)
                    if next_id is None:
                        return FAILED
                    current = next_id
                    continue

            suggested = outcome.next_label or DEFAULT_LABEL
            label = suggested
            if outcome.result is not None:
                label = await self.plugins.choose_next_label(self.run_id, step, outcome.result, suggested)
            edge = find_edge(outgoing, current, label)
            if edge is None:
                labels = outgoing_labels(outgoing, current)
                if labels:
                    self.logger.warning(step.id, f"No next edge for label '{label}'. Outgoing labels: [{', '.join(labels)}]")
                break
            await self.logger.overlay_append(f"↪ next({label}) → {edge.to}")
            current = edge.to
        return OK

    def _route_failure(self, outgoing: Dict[str, List[Edge]], node_id: str, decision) -> Optional[str]:
        """Next node after a failed step, or None to halt."""
        if decision.kind == "stop":
            return None
        if decision.kind == "continue":
            edge = find_edge(outgoing, node_id, DEFAULT_LABEL)
            return edge.to if edge else None
        edge = find_error_edge(outgoing, node_id, decision.label)
        return edge.to if edge else None

    async def _run_subflow(self, subflows: Dict[str, Subflow], subflow_id: str, ctx: StepContext) -> str:
        subflow = subflows.get(subflow_id)
        if subflow is None:
            self.logger.failed(subflow_id, f"Subflow '{subflow_id}' not found")
            return FAILED
        start = find_start_node(subflow.nodes, subflow.edges)
        return await self._walk(ctx, subflow.nodes, subflow.edges, start, subflows)

    async def _execute_flow(
        self,
        flow_id: str,
        args: Dict[str, Any],
        isolate: bool,
        action_ctx: ActionExecutionContext,
    ) -> RunResult:
        """
        Run a stored flow for an executeFlow step.

        Inline runs walk the callee graph with this run's variables and tab.
        Isolated runs get their own orchestrator seeded only with ``args``.

        Raises:
            ActionError: Missing store or flow, recursion, or an invalid graph
        """
        store = self.options.flow_store
        if store is None:
            raise ActionError("executeFlow requires a flow store", ErrorCode.VALIDATION_ERROR, "executeFlow", retryable=False)
        if flow_id in self._active_flows:
            raise ActionError(f"Recursive executeFlow of '{flow_id}'", ErrorCode.VALIDATION_ERROR, "executeFlow", retryable=False)
        callee = await store.get(flow_id)
        if callee is None:
            raise ActionError(f"Flow '{flow_id}' not found", ErrorCode.VALIDATION_ERROR, "executeFlow", retryable=False)

        if isolate:
            options = RunOptions(
                args=dict(args),
                tab_id=action_ctx.tab_id,
                start_url=self.options.start_url,
                execution_mode=self.mode_config.mode,
                registry=self.options.registry,
                flow_store=store,
                settings=self.settings,
                timeout_ms=max(1, math.ceil(self.remaining_budget_ms())) if self._deadline is not None else None,
            )
            child = ExecutionOrchestrator(callee, self.browser, options)
            child._active_flows = self._active_flows + [flow_id]
            result = await child.run()
            for entry in result.logs or []:
                self.logger.push(RunLogEntry(
                    step_id=f"{flow_id}/{entry.step_id}",
                    status="info" if entry.status == "success" else entry.status,
                    message=entry.message,
                    took_ms=entry.took_ms,
                ))
            return result

        try:
            validate_graph(callee.nodes, callee.edges)
        except DagError as e:
            raise ActionError(f"Flow '{flow_id}': {e.message}", ErrorCode.VALIDATION_ERROR, "executeFlow", retryable=False)
        if has_cycle(callee.nodes, callee.edges):
            raise ActionError(f"Flow '{flow_id}' contains a cycle", ErrorCode.VALIDATION_ERROR, "executeFlow", retryable=False)

        for definition in callee.variables:
            if definition.default is not None and definition.name not in action_ctx.vars:
                action_ctx.vars[definition.name] = definition.default
        action_ctx.vars.update(args)

        branch = StepContext(
            browser=self.browser,
            vars=action_ctx.vars,
            tab_id=action_ctx.tab_id,
            frame_id=action_ctx.frame_id,
            run_id=self.run_id,
            settings=self.engine,
            resolver=action_ctx.resolver,
            logger=self.logger,
            remaining_budget_ms=self.remaining_budget_ms,
            services=action_ctx.services,
        )
        self._active_flows.append(flow_id)
        try:
            status = await self._walk(branch, callee.nodes, callee.edges, find_start_node(callee.nodes, callee.edges), callee.subflows)
        finally:
            self._active_flows.pop()
        action_ctx.tab_id = branch.tab_id
        action_ctx.frame_id = branch.frame_id
        return RunResult(
            run_id=self.run_id,
            success=status == OK,
            paused=status == PAUSED,
            outputs=action_ctx.vars.snapshot(exclude=callee.sensitive_variables),
        )

    # Cleanup

    async def _stop_network_capture(self) -> None:
        try:
            data = await self.browser.stop_network_capture(self.ctx.tab_id)
        except FlowReplayError as e:
            self.logger.warning(NETWORK_CAPTURE, f"Network capture stop failed: {e.message}")
            return
        if not data:
            return
        requests = data.get("requests") or []
        snippets = [
            {
                "method": str(r.get("method") or "GET"),
                "url": str(r.get("url") or ""),
                "status": r.get("statusCode", r.get("status")),
                "ms": max(0, (r.get("responseTime") or 0) - (r.get("requestTime") or 0)),
            }
            for r in requests
            if str(r.get("type")) in NETWORK_SNIPPET_TYPES
        ][: self.replay.network_summary_limit]
        self.logger.push(RunLogEntry(
            step_id=NETWORK_CAPTURE,
            status="success",
            message=f"Captured {int(data.get('requestCount', len(requests)))} requests",
            network_snippets=snippets,
        ))

    def _outputs(self) -> Dict[str, Any]:
        sensitive = self.flow.sensitive_variables
        outputs = self.vars.snapshot(exclude=sensitive)
        for exposed in self.flow.meta.exposed_outputs:
            if exposed.key in self.vars and exposed.key not in sensitive:
                outputs[exposed.as_ or exposed.key] = self.vars.get_path(exposed.key)
        return outputs

    async def _cleanup(self) -> RunResult:
        if self._network_capture:
            await self._stop_network_capture()

        success = not self.paused and not self._fatal and not self._timed_out and self.failed == 0
        await self.logger.overlay_done(success)

        store = self.options.run_record_store
        if store is not None and not self.paused:
            try:
                await self.logger.persist(store, self.flow.id, self.started_at, success)
            except (OSError, FlowReplayError) as e:
                self.logger.warning(RUN_RECORD, f"Run record not saved: {e}")

        run_states = self.options.run_states
        if run_states is not None and self._run_state_added:
            status = "paused" if self.paused else ("completed" if success else "failed")
            try:
                await run_states.update(self.run_id, status=status, current_node_id=self.resume_node_id)
            finally:
                if not self.paused:
                    await run_states.delete(self.run_id)

        url = None
        if self.ctx is not None:
            try:
                tab = await self.browser.get_tab(self.ctx.tab_id)
            except FlowReplayError as e:
                logger.warning(f"[{self.run_id}] Final URL unavailable: {e.message}")
                tab = None
            url = tab.url if tab else None

        logs = self.logger.get_logs()
        first_failure = self.logger.first_failure()
        screenshot = first_failure.screenshot_base64 if first_failure else None
        return_logs = self.replay.return_logs if self.options.return_logs is None else self.options.return_logs
        result = RunResult(
            run_id=self.run_id,
            success=success,
            summary=RunSummary(
                total=self.executed,
                success=max(0, self.executed - self.failed),
                failed=self.failed,
                took_ms=(time.monotonic() - self._start) * 1000,
            ),
            outputs=self._outputs(),
            logs=logs if return_logs else None,
            screenshots={"onFailure": screenshot} if screenshot else None,
            paused=self.paused,
            resume_node_id=self.resume_node_id if self.paused else None,
            url=url,
            error=first_failure.message if first_failure else None,
        )
        await self.plugins.on_run_end(self.run_id, result)
        await self.logger.flush()
        logger.info(
            f"[{self.run_id}] {'paused' if self.paused else ('completed' if success else 'failed')}: "
            f"{result.summary.total} step(s), {result.summary.failed} failed in {result.summary.took_ms:.0f}ms"
        )
        return result


async def run_flow(flow: Flow, browser: IBrowserControl, options: Optional[RunOptions] = None) -> RunResult:
    """Run ``flow`` once against ``browser``."""
    return await ExecutionOrchestrator(flow, browser, options).run()
