"""Data-store node processors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowpatch.models import NodeType
from flowpatch.patch import patterns
from flowpatch.patch.defaults import build_data_store_field
from flowpatch.patch.navigator import insert_at
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

FAMILY = "dataStoreNodes"
MAP_KEY = "dataStoreNodes"
DEFAULT_COLOR = "#3b82f6"


async def _commit_fields(
    ctx: OperationContext, env: ProcessorEnv, node_id: str, fields: list[dict[str, Any]]
) -> OperationResult:
    node = entity(ctx.resource, MAP_KEY, node_id)
    flow_id = env.persistence_target(ctx, f"dataStoreNodes.{node_id}.dataStoreFields")
    if flow_id and env.services:
        require(
            await env.services.data_store_nodes.update_fields(flow_id, node_id, fields),
            "data_store_nodes.update_fields",
        )
        env.invalidate(MAP_KEY, node_id)
    node["dataStoreFields"] = fields
    return ok(ctx)


async def handle_field(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or remove a scalar field. ``name`` and ``color`` are persisted."""
    node_id, name = match.group(1), match.group(2)
    if ctx.operation == "put" or name == "id":
        raise unsupported(ctx, f"dataStoreNodes.{node_id}.{name}")
    node = entity(ctx.resource, MAP_KEY, node_id)
    if ctx.operation == "remove":
        node.pop(name, None)
        return ok(ctx)

    flow_id = None
    if name in ("name", "color"):
        flow_id = env.persistence_target(ctx, f"dataStoreNodes.{node_id}.{name}")
    if flow_id and env.services:
        service = env.services.data_store_nodes
        if name == "name":
            result = await service.update_name(flow_id, node_id, str(ctx.value))
        else:
            result = await service.update_color(flow_id, node_id, str(ctx.value))
        require(result, f"data_store_nodes.update_{name}")
        env.invalidate(MAP_KEY, node_id)
    node[name] = ctx.value
    return ok(ctx)


async def handle_fields(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append, replace or clear the field list.

    ``put`` honours an ``index`` key in the value: the field is inserted at
    that position instead of appended.
    """
    node_id = match.group(1)
    fields = staged_list(entity(ctx.resource, MAP_KEY, node_id), "dataStoreFields")
    value = ctx.value
    if ctx.operation == "put" and isinstance(value, dict) and isinstance(value.get("index"), int):
        payload = {k: v for k, v in value.items() if k != "index"}
        insert_at(fields, max(value["index"], 0), payload, build_data_store_field)
    else:
        target = f"dataStoreNodes.{node_id}.dataStoreFields"
        apply_collection(ctx, fields, build_data_store_field, target)
    return await _commit_fields(ctx, env, node_id, fields)


async def handle_field_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    node_id, index = match.group(1), match.index_group(2)
    fields = staged_list(entity(ctx.resource, MAP_KEY, node_id), "dataStoreFields")
    if not apply_indexed(ctx, fields, index, build_data_store_field):
        return ok(ctx)
    return await _commit_fields(ctx, env, node_id, fields)


def register_data_store_processors(registry: ProcessorRegistry) -> None:
    """Register data-store node processors."""
    registry.register(
        "data_store",
        patterns.DATA_STORE_BASE,
        make_base_handler(NodeType.DATA_STORE, FAMILY, default_color=DEFAULT_COLOR),
        family=FAMILY,
        description="Create, replace or delete a data-store node",
        failure_message="Failed to update data store node",
    )
    registry.register(
        "data_store_field",
        patterns.DATA_STORE_FIELD,
        handle_field,
        family=FAMILY,
        description="Set a data-store node field",
        failure_message="Failed to update data store node",
    )
    registry.register(
        "data_store_fields",
        patterns.DATA_STORE_FIELDS_APPEND,
        handle_fields,
        family=FAMILY,
        description="Append or insert a data-store field",
        failure_message="Failed to add data store field",
    )
    registry.register(
        "data_store_field_indexed",
        patterns.DATA_STORE_FIELDS_INDEXED,
        handle_field_indexed,
        family=FAMILY,
        description="Set, insert or remove a data-store field by index",
        failure_message="Failed to update data store field",
    )
