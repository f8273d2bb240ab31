"""Node/edge lifecycle: entity provisioning, rollback, color policy, intent log."""

from flowpatch.lifecycle.colors import assign_color, used_colors
from flowpatch.lifecycle.intents import CreationIntent, IntentLog, IntentState
from flowpatch.lifecycle.manager import NodeLifecycleManager, entity_fields, parse_node_type

__all__ = [
    "CreationIntent",
    "IntentLog",
    "IntentState",
    "NodeLifecycleManager",
    "assign_color",
    "entity_fields",
    "parse_node_type",
    "used_colors",
]
