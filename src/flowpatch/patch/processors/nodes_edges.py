"""Graph node and edge processors.

Node and edge changes are delegated to the
:class:`~flowpatch.lifecycle.manager.NodeLifecycleManager`, which owns the
backing entities and the rollback protocol. In the preview phase creation
is validated only; the lifecycle runs when the operation is approved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowpatch.observability.logging import get_logger
from flowpatch.patch import patterns
from flowpatch.patch.processors.base import ok, unsupported

if TYPE_CHECKING:
    from flowpatch.patch.context import OperationContext, OperationResult
    from flowpatch.patch.grammar import PathMatch
    from flowpatch.patch.processors.base import ProcessorEnv
    from flowpatch.patch.registry import ProcessorRegistry

log = get_logger(__name__)

FAMILY = "graph"


_NODE_KEYS = frozenset({"id", "type", "nodeType", "position", "data"})


def _node_payload(value: dict[str, Any]) -> tuple[Any, Any, Any, dict[str, Any]]:
    """Split a ``flow.nodes`` value into ``(id, type, position, entity data)``."""
    data = dict(value.get("data") or {})
    data.update({k: v for k, v in value.items() if k not in _NODE_KEYS})
    node_type = value.get("nodeType") or value.get("type")
    return value.get("id"), node_type, value.get("position"), data


async def handle_nodes(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Create a node (``put``) together with its backing entity."""
    if ctx.operation != "put":
        raise unsupported(ctx, "flow.nodes", "use put to create a node")
    if not isinstance(ctx.value, dict):
        raise unsupported(ctx, "flow.nodes", "value must be an object")
    node_id, node_type, position, data = _node_payload(ctx.value)
    flow_id = ctx.resolve_flow_id()

    if ctx.preview and env.config.preview_node_creation:
        env.lifecycle.validate_creation(ctx.resource, flow_id, node_id, node_type, position)
        log.debug("node_creation_deferred", node_id=node_id, node_type=node_type)
        return ok(ctx)

    await env.lifecycle.create_node(ctx.resource, flow_id, node_id, node_type, data, position)
    return ok(ctx)


async def handle_node_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Remove the node at an index, cascading to its edges and entity."""
    if ctx.operation != "remove":
        raise unsupported(
            ctx, f"flow.nodes[{match.group(1)}]", "nodes can only be removed by index"
        )
    await env.lifecycle.delete_node(ctx.resource, ctx.resolve_flow_id(), match.index_group(1))
    return ok(ctx)


async def handle_edges(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Add an edge (``put``) between two existing nodes."""
    if ctx.operation != "put":
        raise unsupported(ctx, "flow.edges", "use put to add an edge")
    if not isinstance(ctx.value, dict):
        raise unsupported(ctx, "flow.edges", "value must be an object")
    if ctx.preview and env.config.preview_node_creation:
        env.lifecycle.validate_edge(ctx.resource, ctx.value)
        return ok(ctx)
    await env.lifecycle.add_edge(ctx.resource, ctx.resolve_flow_id(), ctx.value)
    return ok(ctx)


async def handle_edge_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    if ctx.operation != "remove":
        raise unsupported(
            ctx, f"flow.edges[{match.group(1)}]", "edges can only be removed by index"
        )
    await env.lifecycle.remove_edge(ctx.resource, ctx.resolve_flow_id(), match.index_group(1))
    return ok(ctx)


def register_graph_processors(registry: ProcessorRegistry) -> None:
    """Register node and edge processors."""
    registry.register(
        "flow_nodes",
        patterns.FLOW_NODES_APPEND,
        handle_nodes,
        family=FAMILY,
        description="Create a node and its backing entity",
        failure_message="Failed to create node",
    )
    registry.register(
        "flow_node_indexed",
        patterns.FLOW_NODES_INDEXED,
        handle_node_indexed,
        family=FAMILY,
        description="Remove a node and its edges",
        failure_message="Failed to remove node",
    )
    registry.register(
        "flow_edges",
        patterns.FLOW_EDGES_APPEND,
        handle_edges,
        family=FAMILY,
        description="Add an edge",
        failure_message="Failed to add edge",
    )
    registry.register(
        "flow_edge_indexed",
        patterns.FLOW_EDGES_INDEXED,
        handle_edge_indexed,
        family=FAMILY,
        description="Remove an edge",
        failure_message="Failed to remove edge",
    )
