"""
Flow Replay - CLI Entry Point.

Configuration Priority:
    1. CLI arguments (--mode, --timeout, etc.)
    2. Environment variables (FLOW_REPLAY__EXECUTION__MODE, etc.)
    3. Config file (config.yaml)

Usage:
    flow-replay run flows/login.json --arg user=alice --visible
    flow-replay validate flows/login.json
    flow-replay describe flows/login.json --mode hybrid
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flow_replay.browsers.playwright_browser import PlaywrightBrowserControl
from flow_replay.config import get_settings
from flow_replay.engine.adapter import convert_step_to_action, node_to_step
from flow_replay.engine.execution_mode import ExecutionModeConfig, describe_routing
from flow_replay.engine.graph import has_cycle, topo_order, validate_graph
from flow_replay.engine.orchestrator import RunOptions, run_flow
from flow_replay.exceptions import DagError, FlowReplayError, UnsupportedActionError
from flow_replay.models.flow import Action, Flow
from flow_replay.models.results import RunResult
from flow_replay.registry import create_replay_action_registry
from flow_replay.storage import JsonFlowStore, JsonRunRecordStore, load_flow_file
from flow_replay.utils.logging import setup_logging

# Create the CLI app
app = typer.Typer(
    name="flow-replay",
    help="Replay recorded browser interaction flows",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    "success": "green",
    "failed": "red",
    "retrying": "yellow",
    "warning": "yellow",
    "paused": "magenta",
    "skipped": "dim",
    "info": "cyan",
}


def parse_args(pairs: List[str]) -> Dict[str, Any]:
    """
    Parse ``key=value`` pairs. Values that parse as JSON keep their type.

    Raises:
        typer.BadParameter: If a pair has no ``=``
    """
    args: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}")
        try:
            args[key] = json.loads(raw)
        except json.JSONDecodeError:
            args[key] = raw
    return args


def _load(flow_path: str) -> Flow:
    try:
        return load_flow_file(flow_path)
    except FlowReplayError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(1)


def _validate_node(registry, node: Action) -> List[str]:
    action = convert_step_to_action(node_to_step(node)) if node.is_legacy else node
    try:
        handler = registry.get(action.type)
    except UnsupportedActionError:
        # Legacy-only types have no registry handler
        return []
    return handler.validate(action).errors


def validate_flow(flow: Flow) -> List[str]:
    """Return every structural and per-node problem found in ``flow``."""
    problems: List[str] = []
    if not flow.nodes:
        return ["Flow has no DAG nodes"]

    graphs = [("", flow.nodes, flow.edges)]
    graphs += [(f"subflow '{name}': ", sub.nodes, sub.edges) for name, sub in flow.subflows.items()]
    registry = create_replay_action_registry()
    for prefix, nodes, edges in graphs:
        try:
            validate_graph(nodes, edges)
        except DagError as e:
            problems.append(f"{prefix}{e.message}")
            continue
        if has_cycle(nodes, edges):
            problems.append(f"{prefix}graph contains a cycle")
        for node in nodes:
            problems.extend(f"{prefix}{node.id}: {error}" for error in _validate_node(registry, node))
    return problems


@app.command()
def validate(
    flow_path: str = typer.Argument(..., help="Flow file (.json, .yaml)"),
):
    """
    Check a flow's graph and node parameters without running it.
    """
    flow = _load(flow_path)
    problems = validate_flow(flow)
    if problems:
        console.print(f"[red]✗ {flow.id}: {len(problems)} problem(s)[/red]")
        for problem in problems:
            console.print(f"  • {problem}")
        raise typer.Exit(1)
    console.print(f"[green]✓ {flow.id} is valid[/green] ({len(flow.nodes)} nodes, {len(flow.edges)} edges)")


@app.command()
def describe(
    flow_path: str = typer.Argument(..., help="Flow file (.json, .yaml)"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Execution mode: legacy, hybrid, actions"),
):
    """
    List a flow's nodes in execution order with the executor each would use.
    """
    flow = _load(flow_path)
    settings = get_settings()
    config = ExecutionModeConfig.from_settings(settings.execution, mode)
    routing = describe_routing(config, {node.type for node in flow.nodes})
    registry = create_replay_action_registry()

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Node")
    table.add_column("Type")
    table.add_column("Executor", width=8)
    table.add_column("Description", style="dim")

    for node in topo_order(flow.nodes, flow.edges):
        action = convert_step_to_action(node_to_step(node)) if node.is_legacy else node
        description = node.name or ""
        if registry.has(action.type):
            description = description or registry.get(action.type).describe(action)
        table.add_row(node.id, node.type, routing[node.type], description)

    console.print(Panel.fit(
        f"[bold blue]{flow.name or flow.id}[/bold blue]\n"
        f"[dim]Mode:[/dim] {config.mode}\n"
        f"[dim]Subflows:[/dim] {', '.join(flow.subflows) or 'none'}",
        border_style="blue",
    ))
    console.print(table)


@app.command()
def run(
    flow_path: str = typer.Argument(..., help="Flow file (.json, .yaml)"),
    arg: List[str] = typer.Option([], "--arg", "-a", help="Flow argument as key=value (repeatable)"),
    start_url: Optional[str] = typer.Option(None, "--start-url", "-u", help="Open this URL first; skips binding checks"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Execution mode: legacy, hybrid, actions"),
    timeout: Optional[int] = typer.Option(None, "--timeout", "-t", help="Global deadline in seconds"),
    headless: bool = typer.Option(True, "--headless/--visible", help="Run the browser headless or visible"),
    capture_network: bool = typer.Option(False, "--capture-network", help="Summarize XHR/Fetch requests"),
    as_json: bool = typer.Option(False, "--json", help="Print the run result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Replay a flow in a Playwright browser.

    Examples:
        flow-replay run flows/search.json --arg query=cats --visible
        flow-replay run flows/checkout.yaml --mode hybrid --timeout 120 --json
    """
    settings = get_settings()
    setup_logging(settings.logging, verbose=verbose)

    flow = _load(flow_path)
    options = RunOptions(
        args=parse_args(arg),
        start_url=start_url,
        execution_mode=mode,
        timeout_ms=timeout * 1000 if timeout else None,
        capture_network=capture_network or None,
    )
    if settings.storage_dir:
        options.flow_store = JsonFlowStore(settings.storage_dir)
        options.run_record_store = JsonRunRecordStore(settings.storage_dir)

    if not as_json:
        console.print(Panel.fit(
            f"[bold blue]▶ {flow.name or flow.id}[/bold blue]\n"
            f"[dim]Mode:[/dim] {mode or settings.execution.mode}\n"
            f"[dim]Browser:[/dim] {settings.browser.browser_type} ({'headless' if headless else 'visible'})",
            border_style="blue",
        ))

    browser_settings = settings.browser.model_copy(update={"headless": headless})
    result = asyncio.run(_run_async(flow, options, browser_settings))

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _print_result(result)
    if not result.success:
        raise typer.Exit(1)


async def _run_async(flow: Flow, options: RunOptions, browser_settings) -> RunResult:
    """Run the flow with proper browser cleanup."""
    browser = PlaywrightBrowserControl(browser_settings)
    try:
        await browser.launch()
        return await run_flow(flow, browser, options)
    except FlowReplayError as e:
        console.print(f"\n[red]Error: {e.message}[/red]")
        logging.exception("Execution failed")
        raise typer.Exit(1)
    finally:
        await browser.close()


def _print_result(result: RunResult) -> None:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Step")
    table.add_column("Status", width=10)
    table.add_column("Time", justify="right", width=8)
    table.add_column("Message", style="dim")

    for entry in result.logs or []:
        style = STATUS_STYLES.get(entry.status, "white")
        took = f"{entry.took_ms:.0f}ms" if entry.took_ms is not None else ""
        table.add_row(entry.step_id, f"[{style}]{entry.status}[/{style}]", took, (entry.message or "")[:80])
    console.print(table)

    summary = result.summary
    if result.paused:
        console.print(f"\n[magenta]⏸ Paused[/magenta] at {result.resume_node_id}")
    elif result.success:
        console.print("\n[green]✓ Success![/green]")
    else:
        console.print("\n[red]✗ Failed[/red]")
        if result.error:
            console.print(f"  Error: {result.error}")
    console.print(f"  Steps: {summary.success}/{summary.total} ok, {summary.failed} failed")
    console.print(f"  Duration: {summary.took_ms / 1000:.1f}s")
    if result.outputs:
        console.print("\n[bold]Outputs:[/bold]")
        for key, value in result.outputs.items():
            console.print(f"  {key}: {value}")


if __name__ == "__main__":
    app()
