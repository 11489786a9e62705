"""
Registry module - handler records for registry-based dispatch.
"""

from flow_replay.registry.registry import (
    ActionRegistry,
    register_action,
    registered_action_types,
    create_replay_action_registry,
)

__all__ = [
    "ActionRegistry",
    "register_action",
    "registered_action_types",
    "create_replay_action_registry",
]
