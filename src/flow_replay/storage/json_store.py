"""
JSON-file stores.

Layout under the storage directory::

    flows/<flow_id>.json
    runs.json
    schedules.json

YAML flow documents (``.yaml``/``.yml``) placed in ``flows/`` are read too.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from flow_replay.exceptions import FlowValidationError
from flow_replay.models.flow import Flow
from flow_replay.models.results import RunRecord
from flow_replay.storage.base import (
    IFlowStore,
    IRunRecordStore,
    IScheduleStore,
    Schedule,
    normalize_flow_for_save,
)

logger = logging.getLogger(__name__)

FLOW_SUFFIXES = (".json", ".yaml", ".yml")


def load_flow_file(path: str | Path) -> Flow:
    """
    Load a flow document from JSON or YAML.

    Raises:
        FlowValidationError: If the file is missing or not a valid flow
    """
    path = Path(path)
    if not path.exists():
        raise FlowValidationError(f"Flow file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) if path.suffix in (".yaml", ".yml") else json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise FlowValidationError(f"Cannot parse {path}: {e}")
    if not isinstance(data, dict):
        raise FlowValidationError(f"{path} does not contain a flow object")
    try:
        return Flow.from_dict(data)
    except ValueError as e:
        raise FlowValidationError(f"Invalid flow in {path}: {e}")


def _read_list(path: Path, key: str) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    return list(data.get(key, []))


def _write_list(path: Path, key: str, items: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({key: items}, indent=2, default=str), encoding="utf-8")


class JsonFlowStore(IFlowStore):
    def __init__(self, root: str | Path):
        self.dir = Path(root) / "flows"
        self.dir.mkdir(parents=True, exist_ok=True)

    def _find(self, flow_id: str) -> Optional[Path]:
        for suffix in FLOW_SUFFIXES:
            path = self.dir / f"{flow_id}{suffix}"
            if path.exists():
                return path
        return None

    async def get(self, flow_id: str) -> Optional[Flow]:
        path = self._find(flow_id)
        return load_flow_file(path) if path else None

    async def save(self, flow: Flow) -> None:
        flow = normalize_flow_for_save(flow)
        path = self.dir / f"{flow.id}.json"
        path.write_text(json.dumps(flow.to_dict(), indent=2, default=str), encoding="utf-8")

    async def list(self) -> List[Flow]:
        flows = []
        for path in sorted(self.dir.iterdir()):
            if path.suffix in FLOW_SUFFIXES:
                flows.append(load_flow_file(path))
        return flows

    async def delete(self, flow_id: str) -> None:
        path = self._find(flow_id)
        if path:
            path.unlink()


class JsonRunRecordStore(IRunRecordStore):
    """Keeps at most ``max_records`` records, newest last."""

    def __init__(self, root: str | Path, max_records: int = 500):
        self.path = Path(root) / "runs.json"
        self.max_records = max_records

    async def append(self, record: RunRecord) -> None:
        records = _read_list(self.path, "runs")
        records.append(record.to_dict())
        _write_list(self.path, "runs", records[-self.max_records:])
        logger.debug(f"Saved run record {record.id} to {self.path}")

    async def list(self, flow_id: Optional[str] = None) -> List[RunRecord]:
        records = [RunRecord.from_dict(r) for r in _read_list(self.path, "runs")]
        return [r for r in records if flow_id is None or r.flow_id == flow_id]


class JsonScheduleStore(IScheduleStore):
    def __init__(self, root: str | Path):
        self.path = Path(root) / "schedules.json"

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        for schedule in await self.list():
            if schedule.id == schedule_id:
                return schedule
        return None

    async def save(self, schedule: Schedule) -> None:
        schedules = [s for s in await self.list() if s.id != schedule.id]
        schedules.append(schedule)
        _write_list(self.path, "schedules", [s.to_dict() for s in schedules])

    async def list(self) -> List[Schedule]:
        return [Schedule.from_dict(s) for s in _read_list(self.path, "schedules")]

    async def delete(self, schedule_id: str) -> None:
        schedules = [s for s in await self.list() if s.id != schedule_id]
        _write_list(self.path, "schedules", [s.to_dict() for s in schedules])
