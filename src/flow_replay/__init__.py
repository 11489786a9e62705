"""
Flow Replay - execution engine for recorded browser interaction flows.

A flow is a directed acyclic graph of steps. The engine walks the graph
against a browser collaborator, applying retry, timeout and wait policies
to every step and reporting a structured run log.

Example:
    >>> from flow_replay import run_flow, RunOptions
    >>> result = await run_flow(flow, browser, RunOptions(start_url="https://example.com"))
    >>> print(result.summary)
"""

__version__ = "0.1.0"

from flow_replay.models.flow import Flow, Action, Edge
from flow_replay.models.results import ExecutionResult, RunResult, RunLogEntry
from flow_replay.engine.orchestrator import ExecutionOrchestrator, RunOptions, run_flow

__all__ = [
    "Flow",
    "Action",
    "Edge",
    "ExecutionResult",
    "RunResult",
    "RunLogEntry",
    "ExecutionOrchestrator",
    "RunOptions",
    "run_flow",
    "__version__",
]
