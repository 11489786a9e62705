"""
Legacy step schema.

A step is the flat shape executed by the legacy dispatch table: base fields
plus type-specific keys kept verbatim in ``params``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

STEP_BASE_KEYS = frozenset({"id", "type", "timeoutMs", "timeoutScope", "retry", "screenshotOnFail", "onError", "artifacts", "disabled"})


@dataclass
class StepRetry:
    count: int = 0
    interval_ms: int = 0
    backoff: str = "none"
    max_interval_ms: Optional[int] = None
    jitter: Optional[str] = None
    retry_on: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepRetry":
        return cls(
            count=int(data.get("count", 0) or 0),
            interval_ms=int(data.get("intervalMs", 0) or 0),
            backoff=data.get("backoff", "none") or "none",
            max_interval_ms=data.get("maxIntervalMs"),
            jitter=data.get("jitter"),
            retry_on=data.get("retryOn"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"count": self.count, "intervalMs": self.interval_ms, "backoff": self.backoff}
        if self.max_interval_ms is not None:
            data["maxIntervalMs"] = self.max_interval_ms
        if self.jitter is not None:
            data["jitter"] = self.jitter
        if self.retry_on is not None:
            data["retryOn"] = list(self.retry_on)
        return data


@dataclass
class Step:
    """
    A legacy step.

    Attributes:
        id: Step id (same as the graph node id)
        type: Step type
        params: Type-specific fields in document shape
        timeout_ms: Step timeout
        timeout_scope: attempt or action (None means attempt)
        retry: Retry settings
        screenshot_on_fail: Capture a screenshot when the step fails
        on_error: onError strategy mapping
        artifacts: Artifact options other than the failure screenshot
        name: Display name from the graph node, never read from the flat fields
    """
    id: str
    type: str
    params: Dict[str, Any] = field(default_factory=dict)
    timeout_ms: Optional[int] = None
    timeout_scope: Optional[str] = None
    retry: Optional[StepRetry] = None
    screenshot_on_fail: Optional[bool] = None
    on_error: Optional[Dict[str, Any]] = None
    artifacts: Optional[Dict[str, Any]] = None
    name: Optional[str] = None
    disabled: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        timeout = data.get("timeoutMs")
        retry = data.get("retry")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            params={k: v for k, v in data.items() if k not in STEP_BASE_KEYS},
            timeout_ms=int(timeout) if timeout is not None else None,
            timeout_scope=data.get("timeoutScope"),
            retry=StepRetry.from_dict(retry) if isinstance(retry, dict) else None,
            screenshot_on_fail=data.get("screenshotOnFail"),
            on_error=data.get("onError"),
            artifacts=data.get("artifacts"),
            disabled=bool(data.get("disabled", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type}
        if self.disabled:
            data["disabled"] = True
        if self.timeout_ms is not None:
            data["timeoutMs"] = self.timeout_ms
        if self.timeout_scope is not None:
            data["timeoutScope"] = self.timeout_scope
        if self.retry is not None:
            data["retry"] = self.retry.to_dict()
        if self.screenshot_on_fail is not None:
            data["screenshotOnFail"] = self.screenshot_on_fail
        if self.on_error is not None:
            data["onError"] = self.on_error
        if self.artifacts is not None:
            data["artifacts"] = self.artifacts
        data.update(self.params)
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)
