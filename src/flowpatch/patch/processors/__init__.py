"""Operation processors, one module per entity family.

:func:`build_default_registry` constructs a registry holding every
processor; it replaces any ambient, module-level dispatch table.
"""

from __future__ import annotations

from flowpatch.patch.processors.agents import register_agent_processors
from flowpatch.patch.processors.base import ProcessorEnv
from flowpatch.patch.processors.data_store_nodes import register_data_store_processors
from flowpatch.patch.processors.flow import register_flow_processors
from flowpatch.patch.processors.if_nodes import register_if_node_processors
from flowpatch.patch.processors.nodes_edges import register_graph_processors
from flowpatch.patch.registry import ProcessorRegistry

# One path per pattern; used by ProcessorRegistry.validate().
SAMPLE_PATHS: tuple[str, ...] = (
    "flow.name",
    "flow.response_template",
    "flow.data_store_schema",
    "flow.data_store_schema.fields",
    "flow.data_store_schema.fields[0]",
    "flow.data_store_schema.fields[0].name",
    "flow.nodes",
    "flow.nodes[3]",
    "flow.edges",
    "flow.edges[1]",
    "agents.a1",
    "agents.a1.name",
    "agents.a1.promptMessages",
    "agents.a1.promptMessages[0]",
    "agents.a1.promptMessages[0].role",
    "agents.a1.promptMessages[0].messages",
    "agents.a1.promptMessages[0].messages[1]",
    "agents.a1.promptMessages[0].messages[1].role",
    "agents.a1.promptMessages[0].messages[1].blocks",
    "agents.a1.promptMessages[0].messages[1].blocks[2]",
    "agents.a1.schemaFields",
    "agents.a1.schemaFields[0]",
    "agents.a1.schemaFields[0].type",
    "dataStoreNodes.d1",
    "dataStoreNodes.d1.color",
    "dataStoreNodes.d1.dataStoreFields",
    "dataStoreNodes.d1.dataStoreFields[0]",
    "ifNodes.i1",
    "ifNodes.i1.logicOperator",
    "ifNodes.i1.conditions",
    "ifNodes.i1.conditions[0]",
)


def build_default_registry() -> ProcessorRegistry:
    """Create a registry with every built-in processor registered."""
    registry = ProcessorRegistry()
    register_flow_processors(registry)
    register_graph_processors(registry)
    register_agent_processors(registry)
    register_data_store_processors(registry)
    register_if_node_processors(registry)
    return registry


__all__ = [
    "SAMPLE_PATHS",
    "ProcessorEnv",
    "ProcessorRegistry",
    "build_default_registry",
]
