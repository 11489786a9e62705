"""
In-memory stores, used by tests and one-off runs.
"""

from typing import Dict, List, Optional

from flow_replay.models.flow import Flow
from flow_replay.models.results import RunRecord
from flow_replay.storage.base import (
    IFlowStore,
    IRunRecordStore,
    IScheduleStore,
    Schedule,
    normalize_flow_for_save,
)


class InMemoryFlowStore(IFlowStore):
    def __init__(self, flows: Optional[List[Flow]] = None):
        self._flows: Dict[str, Flow] = {}
        for flow in flows or []:
            self._flows[flow.id] = normalize_flow_for_save(flow)

    async def get(self, flow_id: str) -> Optional[Flow]:
        return self._flows.get(flow_id)

    async def save(self, flow: Flow) -> None:
        self._flows[flow.id] = normalize_flow_for_save(flow)

    async def list(self) -> List[Flow]:
        return list(self._flows.values())

    async def delete(self, flow_id: str) -> None:
        self._flows.pop(flow_id, None)


class InMemoryRunRecordStore(IRunRecordStore):
    def __init__(self) -> None:
        self.records: List[RunRecord] = []

    async def append(self, record: RunRecord) -> None:
        self.records.append(record)

    async def list(self, flow_id: Optional[str] = None) -> List[RunRecord]:
        return [r for r in self.records if flow_id is None or r.flow_id == flow_id]


class InMemoryScheduleStore(IScheduleStore):
    def __init__(self) -> None:
        self._schedules: Dict[str, Schedule] = {}

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        return self._schedules.get(schedule_id)

    async def save(self, schedule: Schedule) -> None:
        self._schedules[schedule.id] = schedule

    async def list(self) -> List[Schedule]:
        return list(self._schedules.values())

    async def delete(self, schedule_id: str) -> None:
        self._schedules.pop(schedule_id, None)
