"""
Run Logger - structured per-step log entries for one run.

Entries are kept in memory for the RunResult, forwarded to an optional
RunLogSink for live display, and mirrored to the module logger.
"""

import json
import logging
import time
from typing import List, Optional, TYPE_CHECKING

from flow_replay.models.results import RunLogEntry, RunRecord

if TYPE_CHECKING:
    from flow_replay.storage.base import IRunRecordStore

logger = logging.getLogger(__name__)

_LEVELS = {
    "failed": logging.ERROR,
    "warning": logging.WARNING,
    "retrying": logging.WARNING,
}


class RunLogSink:
    """
    Receiver for live log output, e.g. an overlay in the page.

    The default implementation ignores everything.
    """

    async def on_entry(self, run_id: str, entry: RunLogEntry) -> None:
        return None

    async def overlay_init(self, run_id: str, title: str) -> None:
        return None

    async def overlay_append(self, run_id: str, text: str) -> None:
        return None

    async def overlay_done(self, run_id: str, success: bool) -> None:
        return None


class RunLogger:
    """
    Collects RunLogEntry objects for a run.

    Example:
        >>> run_logger = RunLogger(run_id="run_123")
        >>> run_logger.success("step-1", "click", took_ms=12.5)
        >>> run_logger.first_failure() is None
        True
    """

    def __init__(self, run_id: str, sink: Optional[RunLogSink] = None):
        self.run_id = run_id
        self.sink = sink
        self._entries: List[RunLogEntry] = []
        self._pending: List[RunLogEntry] = []

    def push(self, entry: RunLogEntry) -> None:
        """Record an entry; it reaches the sink on the next ``flush``."""
        self._entries.append(entry)
        self._pending.append(entry)
        message = f" - {entry.message}" if entry.message else ""
        logger.log(
            _LEVELS.get(entry.status, logging.INFO),
            f"[{self.run_id}] {entry.step_id}: {entry.status}{message}",
            extra={"run_id": self.run_id, "step_id": entry.step_id, "status": entry.status},
        )

    def success(self, step_id: str, message: Optional[str] = None, took_ms: Optional[float] = None) -> None:
        self.push(RunLogEntry(step_id=step_id, status="success", message=message, took_ms=took_ms))

    def failed(
        self,
        step_id: str,
        message: str,
        took_ms: Optional[float] = None,
        screenshot_base64: Optional[str] = None,
    ) -> None:
        self.push(RunLogEntry(step_id=step_id, status="failed", message=message, took_ms=took_ms, screenshot_base64=screenshot_base64))

    def retrying(self, step_id: str, message: str) -> None:
        self.push(RunLogEntry(step_id=step_id, status="retrying", message=message))

    def warning(self, step_id: str, message: str) -> None:
        self.push(RunLogEntry(step_id=step_id, status="warning", message=message))

    def info(self, step_id: str, message: str) -> None:
        self.push(RunLogEntry(step_id=step_id, status="info", message=message))

    async def flush(self) -> None:
        """Forward pending entries to the sink."""
        if self.sink is None:
            self._pending.clear()
            return
        pending, self._pending = self._pending, []
        for entry in pending:
            await self.sink.on_entry(self.run_id, entry)

    async def overlay_init(self, title: str) -> None:
        if self.sink:
            await self.sink.overlay_init(self.run_id, title)

    async def overlay_append(self, text: str) -> None:
        if self.sink:
            await self.sink.overlay_append(self.run_id, text)

    async def overlay_done(self, success: bool) -> None:
        await self.flush()
        if self.sink:
            await self.sink.overlay_done(self.run_id, success)

    def get_logs(self) -> List[RunLogEntry]:
        return self._entries.copy()

    def first_failure(self) -> Optional[RunLogEntry]:
        for entry in self._entries:
            if entry.status == "failed":
                return entry
        return None

    def count(self, status: str) -> int:
        return sum(1 for e in self._entries if e.status == status)

    async def persist(self, store: "IRunRecordStore", flow_id: str, started_at: float, success: bool) -> RunRecord:
        record = RunRecord(
            id=self.run_id,
            flow_id=flow_id,
            started_at=started_at,
            finished_at=time.time(),
            success=success,
            entries=self.get_logs(),
        )
        await store.append(record)
        return record

    def export_json(self, path: str) -> None:
        with open(path, "w") as f:
            json.dump([entry.to_dict() for entry in self._entries], f, indent=2)
