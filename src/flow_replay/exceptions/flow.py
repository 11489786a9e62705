"""
Flow structure exceptions.
"""

from flow_replay.exceptions.base import FlowReplayError


class FlowValidationError(FlowReplayError):
    """Raised when a flow document cannot be parsed or is structurally invalid."""
    pass


class DagError(FlowValidationError):
    """
    The flow graph cannot be executed.

    Attributes:
        code: One of DAG_REQUIRED, DAG_CYCLE, DANGLING_EDGE, DUPLICATE_NODE
    """

    DAG_REQUIRED = "DAG_REQUIRED"
    DAG_CYCLE = "DAG_CYCLE"
    DANGLING_EDGE = "DANGLING_EDGE"
    DUPLICATE_NODE = "DUPLICATE_NODE"

    def __init__(self, message: str, code: str, details: dict | None = None):
        super().__init__(message, details)
        self.code = code
