"""
Runtime result types: per-action results, log entries and run results.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from flow_replay.exceptions import ErrorCode


class ExecutionStatus(str, Enum):
    """Status of a single action execution."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    PAUSED = "paused"


@dataclass
class ExecutionError:
    code: ErrorCode
    message: str
    retryable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


@dataclass
class ControlDirective:
    """
    A loop request returned by a foreach or while action.

    Attributes:
        kind: foreach or while
        subflow_id: Name of the subflow to execute per iteration
        list_var: foreach list variable name
        item_var: foreach item variable name
        concurrency: foreach parallelism bound
        condition: while condition
        max_iterations: while iteration cap
    """
    kind: str
    subflow_id: str
    list_var: Optional[str] = None
    item_var: str = "item"
    concurrency: int = 1
    condition: Optional[Any] = None
    max_iterations: Optional[int] = None


@dataclass
class ExecutionResult:
    """
    Result of running one action.

    Attributes:
        status: success, failed, skipped or paused
        output: Optional typed output (extracted value, screenshot, response)
        error: Error code and message when failed
        next_label: Edge label to follow
        control: Loop directive for the control-flow runner
        duration_ms: Time taken
        metadata: Executor-specific extras
    """
    status: ExecutionStatus
    output: Any = None
    error: Optional[ExecutionError] = None
    next_label: Optional[str] = None
    control: Optional[ControlDirective] = None
    duration_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @classmethod
    def ok(
        cls,
        output: Any = None,
        next_label: Optional[str] = None,
        control: Optional[ControlDirective] = None,
        **metadata: Any,
    ) -> "ExecutionResult":
        """Create a successful result."""
        return cls(
            status=ExecutionStatus.SUCCESS,
            output=output,
            next_label=next_label,
            control=control,
            metadata=metadata,
        )

    @classmethod
    def failed(
        cls,
        code: ErrorCode,
        message: str,
        retryable: bool = True,
        **metadata: Any,
    ) -> "ExecutionResult":
        """Create a failed result."""
        return cls(
            status=ExecutionStatus.FAILED,
            error=ExecutionError(ErrorCode(code), message, retryable),
            metadata=metadata,
        )

    @classmethod
    def skipped(cls, reason: str = "") -> "ExecutionResult":
        return cls(status=ExecutionStatus.SKIPPED, metadata={"reason": reason} if reason else {})


@dataclass
class StepExecutionResult:
    """
    Result of a step executor, identical in shape across executors.

    Attributes:
        result: The action result
        executor: legacy or actions
        fallback: True when hybrid mode fell back to legacy
        fallback_reason: Why hybrid mode fell back
    """
    result: ExecutionResult
    executor: str = "legacy"
    fallback: bool = False
    fallback_reason: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RunLogEntry:
    """
    One structured log line of a run.

    Status is one of success, failed, retrying, warning, info, skipped or paused.
    ``network_snippets`` holds request summaries on the network-capture entry.
    """
    step_id: str
    status: str
    message: Optional[str] = None
    took_ms: Optional[float] = None
    screenshot_base64: Optional[str] = None
    fallback_used: Optional[bool] = None
    fallback_from: Optional[str] = None
    fallback_to: Optional[str] = None
    network_snippets: Optional[List[Dict[str, Any]]] = None
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "stepId": self.step_id,
            "status": self.status,
            "message": self.message,
            "tookMs": round(self.took_ms, 1) if self.took_ms is not None else None,
            "screenshotBase64": self.screenshot_base64,
            "fallbackUsed": self.fallback_used,
            "fallbackFrom": self.fallback_from,
            "fallbackTo": self.fallback_to,
            "networkSnippets": self.network_snippets,
            "timestamp": self.timestamp,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunLogEntry":
        return cls(
            step_id=data["stepId"],
            status=data["status"],
            message=data.get("message"),
            took_ms=data.get("tookMs"),
            screenshot_base64=data.get("screenshotBase64"),
            fallback_used=data.get("fallbackUsed"),
            fallback_from=data.get("fallbackFrom"),
            fallback_to=data.get("fallbackTo"),
            network_snippets=data.get("networkSnippets"),
            timestamp=data.get("timestamp") or _now_iso(),
        )


@dataclass
class RunSummary:
    total: int = 0
    success: int = 0
    failed: int = 0
    took_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "success": self.success, "failed": self.failed, "tookMs": round(self.took_ms, 1)}


@dataclass
class RunResult:
    """
    Outcome of one flow run.

    Attributes:
        run_id: Unique run id
        success: True when not paused and no step failed
        summary: Step counts and duration
        outputs: Non-sensitive variable snapshot
        logs: Log entries when requested
        screenshots: ``{"onFailure": base64}`` from the first failed entry
        paused: True when a plugin paused the run
        resume_node_id: Node to re-enter at when resuming a paused run
        url: Page URL at the end of the run
        error: Fatal preparation error message
    """
    run_id: str
    success: bool
    summary: RunSummary = field(default_factory=RunSummary)
    outputs: Dict[str, Any] = field(default_factory=dict)
    logs: Optional[List[RunLogEntry]] = None
    screenshots: Optional[Dict[str, str]] = None
    paused: bool = False
    resume_node_id: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "runId": self.run_id,
            "success": self.success,
            "summary": self.summary.to_dict(),
            "outputs": self.outputs,
            "paused": self.paused,
        }
        if self.logs is not None:
            data["logs"] = [entry.to_dict() for entry in self.logs]
        if self.screenshots:
            data["screenshots"] = self.screenshots
        if self.resume_node_id:
            data["resumeNodeId"] = self.resume_node_id
        if self.url:
            data["url"] = self.url
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class RunRecord:
    """Persisted history of a finished run."""
    id: str
    flow_id: str
    started_at: float
    finished_at: float
    success: bool
    entries: List[RunLogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "flowId": self.flow_id,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "success": self.success,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunRecord":
        return cls(
            id=data["id"],
            flow_id=data["flowId"],
            started_at=data["startedAt"],
            finished_at=data["finishedAt"],
            success=data["success"],
            entries=[RunLogEntry.from_dict(e) for e in data.get("entries", [])],
        )
