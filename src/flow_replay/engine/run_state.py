"""
Run State Registry - tracks runs in progress for external observers.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class RunState:
    """
    Attributes:
        run_id: Run id
        flow_id: Flow being run
        status: running, paused, completed, failed or stopped
        current_node_id: Node executing (or paused at)
        tab_id: Tab the run drives
    """
    run_id: str
    flow_id: str
    status: str = "running"
    current_node_id: Optional[str] = None
    tab_id: Optional[int] = None
    started_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


class IRunStateRegistry(ABC):
    @abstractmethod
    async def add(self, state: RunState) -> None:
        ...

    @abstractmethod
    async def update(self, run_id: str, **changes) -> Optional[RunState]:
        ...

    @abstractmethod
    async def delete(self, run_id: str) -> None:
        ...

    @abstractmethod
    async def get(self, run_id: str) -> Optional[RunState]:
        ...

    @abstractmethod
    async def list(self) -> List[RunState]:
        ...


class InMemoryRunStateRegistry(IRunStateRegistry):
    def __init__(self) -> None:
        self._states: Dict[str, RunState] = {}
        self._lock = asyncio.Lock()

    async def add(self, state: RunState) -> None:
        async with self._lock:
            self._states[state.run_id] = state

    async def update(self, run_id: str, **changes) -> Optional[RunState]:
        async with self._lock:
            state = self._states.get(run_id)
            if state is None:
                return None
            for key, value in changes.items():
                setattr(state, key, value)
            state.updated_at = time.time()
            return state

    async def delete(self, run_id: str) -> None:
        async with self._lock:
            self._states.pop(run_id, None)

    async def get(self, run_id: str) -> Optional[RunState]:
        return self._states.get(run_id)

    async def list(self) -> List[RunState]:
        return list(self._states.values())
