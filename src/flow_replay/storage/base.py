"""
Persistence contracts for flows, run records and schedules.

The engine only ever calls get/save/append; any storage medium can sit
behind these interfaces.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flow_replay.models.flow import Flow
from flow_replay.models.results import RunRecord

logger = logging.getLogger(__name__)


@dataclass
class Schedule:
    """
    A recurring or one-off trigger for a flow.

    Attributes:
        id: Schedule id
        flow_id: Flow to run
        type: once, interval or daily
        when: ISO timestamp (once), minutes (interval) or HH:MM (daily)
        enabled: Whether the schedule is active
        args: Call-time variables
    """
    id: str
    flow_id: str
    type: str = "interval"
    when: str = ""
    enabled: bool = True
    args: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "flowId": self.flow_id,
            "type": self.type,
            "when": self.when,
            "enabled": self.enabled,
            "args": self.args,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        return cls(
            id=data["id"],
            flow_id=data["flowId"],
            type=data.get("type", "interval"),
            when=str(data.get("when", "")),
            enabled=bool(data.get("enabled", True)),
            args=dict(data.get("args") or {}),
        )


def normalize_flow_for_save(flow: Flow) -> Flow:
    """Drop edges whose ends are not nodes of the flow."""
    node_ids = {node.id for node in flow.nodes}
    valid = [e for e in flow.edges if e.from_ in node_ids and e.to in node_ids]
    if len(valid) == len(flow.edges):
        return flow
    logger.warning(f"Flow {flow.id}: dropping {len(flow.edges) - len(valid)} edge(s) to missing nodes")
    return flow.model_copy(update={"edges": valid})


class IFlowStore(ABC):
    @abstractmethod
    async def get(self, flow_id: str) -> Optional[Flow]:
        ...

    @abstractmethod
    async def save(self, flow: Flow) -> None:
        ...

    @abstractmethod
    async def list(self) -> List[Flow]:
        ...

    @abstractmethod
    async def delete(self, flow_id: str) -> None:
        ...


class IRunRecordStore(ABC):
    @abstractmethod
    async def append(self, record: RunRecord) -> None:
        ...

    @abstractmethod
    async def list(self, flow_id: Optional[str] = None) -> List[RunRecord]:
        ...


class IScheduleStore(ABC):
    @abstractmethod
    async def get(self, schedule_id: str) -> Optional[Schedule]:
        ...

    @abstractmethod
    async def save(self, schedule: Schedule) -> None:
        ...

    @abstractmethod
    async def list(self) -> List[Schedule]:
        ...

    @abstractmethod
    async def delete(self, schedule_id: str) -> None:
        ...
