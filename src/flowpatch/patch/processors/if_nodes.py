"""If-node processors.

Conditions are positional. An empty condition list is bootstrapped with
``put`` on ``ifNodes.<id>.conditions`` or ``set`` on ``conditions[0]``;
``put`` at an index of an empty list is rejected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowpatch.models import NodeType
from flowpatch.patch import patterns
from flowpatch.patch.defaults import build_condition
from flowpatch.patch.processors.base import (
    apply_collection,
    apply_indexed,
    entity,
    make_base_handler,
    ok,
    require,
    staged_list,
    unsupported,
)

if TYPE_CHECKING:
    from flowpatch.patch.context import OperationContext, OperationResult
    from flowpatch.patch.grammar import PathMatch
    from flowpatch.patch.processors.base import ProcessorEnv
    from flowpatch.patch.registry import ProcessorRegistry

FAMILY = "ifNodes"
MAP_KEY = "ifNodes"
LOGIC_OPERATORS = ("AND", "OR")


async def _commit_conditions(
    ctx: OperationContext, env: ProcessorEnv, node_id: str, conditions: list[dict[str, Any]]
) -> OperationResult:
    node = entity(ctx.resource, MAP_KEY, node_id)
    flow_id = env.persistence_target(ctx, f"ifNodes.{node_id}.conditions")
    if flow_id and env.services:
        require(
            await env.services.if_nodes.update_conditions(flow_id, node_id, conditions),
            "if_nodes.update_conditions",
        )
        env.invalidate(MAP_KEY, node_id)
    node["conditions"] = conditions
    return ok(ctx)


async def handle_field(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or remove a scalar field.

    ``name`` and ``logicOperator`` are persisted; ``logicOperator`` must be
    ``AND`` or ``OR``.
    """
    node_id, name = match.group(1), match.group(2)
    target = f"ifNodes.{node_id}.{name}"
    if ctx.operation == "put" or name == "id":
        raise unsupported(ctx, target)
    node = entity(ctx.resource, MAP_KEY, node_id)
    if ctx.operation == "remove":
        if name == "logicOperator":
            raise unsupported(ctx, target, "logicOperator is required")
        node.pop(name, None)
        return ok(ctx)

    if name == "logicOperator" and ctx.value not in LOGIC_OPERATORS:
        raise unsupported(ctx, target, "value must be AND or OR")
    if name in ("name", "logicOperator"):
        flow_id = env.persistence_target(ctx, target)
        if flow_id and env.services:
            service = env.services.if_nodes
            if name == "name":
                result = await service.update_name(flow_id, node_id, str(ctx.value))
                action = "if_nodes.update_name"
            else:
                result = await service.update_logic_operator(flow_id, node_id, ctx.value)
                action = "if_nodes.update_logic_operator"
            require(result, action)
            env.invalidate(MAP_KEY, node_id)
    node[name] = ctx.value
    return ok(ctx)


async def handle_conditions(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append, replace or clear the condition list."""
    node_id = match.group(1)
    conditions = staged_list(entity(ctx.resource, MAP_KEY, node_id), "conditions")
    apply_collection(ctx, conditions, build_condition, f"ifNodes.{node_id}.conditions")
    return await _commit_conditions(ctx, env, node_id, conditions)


async def handle_condition_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set, insert or remove the condition at an index."""
    node_id, index = match.group(1), match.index_group(2)
    conditions = staged_list(entity(ctx.resource, MAP_KEY, node_id), "conditions")
    if ctx.operation == "put" and not conditions:
        raise unsupported(
            ctx,
            f"ifNodes.{node_id}.conditions[{index}]",
            "the list is empty; bootstrap with set at index 0",
        )
    if not apply_indexed(ctx, conditions, index, build_condition):
        return ok(ctx)
    return await _commit_conditions(ctx, env, node_id, conditions)


def register_if_node_processors(registry: ProcessorRegistry) -> None:
    """Register if-node processors."""
    registry.register(
        "if_node",
        patterns.IF_NODE_BASE,
        make_base_handler(NodeType.IF, FAMILY),
        family=FAMILY,
        description="Create, replace or delete an if-node",
        failure_message="Failed to update if node",
    )
    registry.register(
        "if_node_field",
        patterns.IF_NODE_FIELD,
        handle_field,
        family=FAMILY,
        description="Set an if-node field",
        failure_message="Failed to update if node",
    )
    registry.register(
        "if_conditions",
        patterns.IF_CONDITIONS_APPEND,
        handle_conditions,
        family=FAMILY,
        description="Append an if-node condition",
        failure_message="Failed to add condition",
    )
    registry.register(
        "if_condition_indexed",
        patterns.IF_CONDITIONS_INDEXED,
        handle_condition_indexed,
        family=FAMILY,
        description="Set, insert or remove an if-node condition by index",
        failure_message="Failed to update condition",
    )
