"""
onError strategy: what the orchestrator does after a step finally fails.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from flow_replay.models.flow import ON_ERROR_LABEL


@dataclass
class OnErrorDecision:
    """
    Attributes:
        kind: stop, continue or goto
        level: Log level for continue
        label: Edge label for goto
    """
    kind: str = "goto"
    level: str = "error"
    label: str = ON_ERROR_LABEL

    @property
    def halts(self) -> bool:
        return self.kind == "stop"


def resolve_on_error(policy: Optional[Dict[str, Any]]) -> OnErrorDecision:
    """
    Normalize an onError policy.

    No policy behaves like ``goto(onError)``: follow an onError edge when the
    node has one, otherwise halt.
    """
    if not policy:
        return OnErrorDecision()
    kind = policy.get("kind", "stop")
    if kind == "continue":
        return OnErrorDecision("continue", policy.get("level") or "warning")
    if kind == "goto":
        return OnErrorDecision("goto", "error", policy.get("label") or ON_ERROR_LABEL)
    return OnErrorDecision("stop")
