"""Pydantic models for flow resources.

Every sub-entity of a flow resource has an explicit model. Default-builders
in :mod:`flowpatch.patch.defaults` validate partial payloads through these
models so array operations never leave half-populated elements behind.
"""

from flowpatch.models.base import WireModel, new_id, new_schema_field_id, utc_now_iso
from flowpatch.models.flow import (
    ENTITY_MAP_KEYS,
    SERVICE_NAMES,
    STRUCTURAL_NODE_TYPES,
    Agent,
    AgentSchemaField,
    DataStoreField,
    DataStoreNode,
    DataStoreSchema,
    DataStoreSchemaField,
    FlowEdge,
    FlowNode,
    FlowResource,
    HistoryPromptMessage,
    IfCondition,
    IfNode,
    LogicOperator,
    NestedMessage,
    NodeType,
    PlainPromptMessage,
    Position,
    PromptBlock,
    PromptMessage,
)

__all__ = [
    "ENTITY_MAP_KEYS",
    "SERVICE_NAMES",
    "STRUCTURAL_NODE_TYPES",
    "Agent",
    "AgentSchemaField",
    "DataStoreField",
    "DataStoreNode",
    "DataStoreSchema",
    "DataStoreSchemaField",
    "FlowEdge",
    "FlowNode",
    "FlowResource",
    "HistoryPromptMessage",
    "IfCondition",
    "IfNode",
    "LogicOperator",
    "NestedMessage",
    "NodeType",
    "PlainPromptMessage",
    "Position",
    "PromptBlock",
    "PromptMessage",
    "WireModel",
    "new_id",
    "new_schema_field_id",
    "utc_now_iso",
]
