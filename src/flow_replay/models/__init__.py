"""
Data model: flow graph, legacy steps and runtime results.
"""

from flow_replay.models.flow import (
    Flow,
    FlowMeta,
    FlowBinding,
    Action,
    ActionPolicy,
    TimeoutPolicy,
    RetryPolicy,
    OnErrorPolicy,
    Edge,
    Subflow,
    VariableDefinition,
    ExposedOutput,
    DEFAULT_LABEL,
    TRUE_LABEL,
    FALSE_LABEL,
    ON_ERROR_LABEL,
)
from flow_replay.models.step import Step, StepRetry
from flow_replay.models.results import (
    ExecutionStatus,
    ExecutionError,
    ExecutionResult,
    ControlDirective,
    StepExecutionResult,
    RunLogEntry,
    RunSummary,
    RunResult,
    RunRecord,
)

__all__ = [
    "Flow",
    "FlowMeta",
    "FlowBinding",
    "Action",
    "ActionPolicy",
    "TimeoutPolicy",
    "RetryPolicy",
    "OnErrorPolicy",
    "Edge",
    "Subflow",
    "VariableDefinition",
    "ExposedOutput",
    "DEFAULT_LABEL",
    "TRUE_LABEL",
    "FALSE_LABEL",
    "ON_ERROR_LABEL",
    "Step",
    "StepRetry",
    "ExecutionStatus",
    "ExecutionError",
    "ExecutionResult",
    "ControlDirective",
    "StepExecutionResult",
    "RunLogEntry",
    "RunSummary",
    "RunResult",
    "RunRecord",
]
