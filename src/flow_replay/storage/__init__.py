"""
Storage - flow, run-record and schedule persistence.
"""

from flow_replay.storage.base import (
    IFlowStore,
    IRunRecordStore,
    IScheduleStore,
    Schedule,
    normalize_flow_for_save,
)
from flow_replay.storage.memory import InMemoryFlowStore, InMemoryRunRecordStore, InMemoryScheduleStore
from flow_replay.storage.json_store import JsonFlowStore, JsonRunRecordStore, JsonScheduleStore, load_flow_file

__all__ = [
    "IFlowStore",
    "IRunRecordStore",
    "IScheduleStore",
    "Schedule",
    "normalize_flow_for_save",
    "InMemoryFlowStore",
    "InMemoryRunRecordStore",
    "InMemoryScheduleStore",
    "JsonFlowStore",
    "JsonRunRecordStore",
    "JsonScheduleStore",
    "load_flow_file",
]
