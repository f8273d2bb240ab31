"""Flow-level field and data-store schema processors.

``flow.*`` paths address the root of the resource: ``flow.name`` is
``resource["name"]``, ``flow.data_store_schema.fields[2]`` is
``resource["data_store_schema"]["fields"][2]``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowpatch.patch import patterns
from flowpatch.patch.defaults import build_data_store_schema_field
from flowpatch.patch.navigator import element_at, ensure_dict
from flowpatch.patch.processors.base import (
    apply_collection,
    apply_indexed,
    decode_json_string,
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

FAMILY = "flow"
SCHEMA_KEY = "data_store_schema"


def _text(ctx: OperationContext, target: str) -> str:
    if ctx.operation == "remove":
        return ""
    if ctx.value is None or isinstance(ctx.value, (dict, list)):
        raise unsupported(ctx, target, "a string value is required")
    return str(ctx.value)


async def handle_name(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or clear the flow name."""
    name = _text(ctx, "flow.name")
    flow_id = env.persistence_target(ctx, "flow.name")
    if flow_id and env.services:
        require(await env.services.flows.update_name(flow_id, name), "flows.update_name")
    if ctx.operation == "remove":
        ctx.resource.pop("name", None)
    else:
        ctx.resource["name"] = name
    return ok(ctx)


async def handle_response_template(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or clear the flow response template."""
    template = _text(ctx, "flow.response_template")
    flow_id = env.persistence_target(ctx, "flow.response_template")
    if flow_id and env.services:
        require(
            await env.services.flows.update_response_template(flow_id, template),
            "flows.update_response_template",
        )
    if ctx.operation == "remove":
        ctx.resource.pop("response_template", None)
    else:
        ctx.resource["response_template"] = template
    return ok(ctx)


async def _commit_schema_fields(
    ctx: OperationContext, env: ProcessorEnv, fields: list[dict[str, Any]]
) -> OperationResult:
    schema = ensure_dict(ctx.resource, SCHEMA_KEY)
    flow_id = env.persistence_target(ctx, SCHEMA_KEY)
    if flow_id and env.services:
        require(
            await env.services.flows.update_data_store_schema(
                flow_id, {**schema, "fields": fields}
            ),
            "flows.update_data_store_schema",
        )
    schema["fields"] = fields
    return ok(ctx)


async def handle_schema_base(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Replace the whole data-store schema, or drop it.

    The store keeps no schema-less state, so a removal is written as an
    empty schema while the resource loses the key.
    """
    if ctx.operation == "put":
        raise unsupported(ctx, "flow.data_store_schema", "use set")
    if ctx.operation == "remove":
        flow_id = env.persistence_target(ctx, SCHEMA_KEY)
        if flow_id and env.services:
            require(
                await env.services.flows.update_data_store_schema(flow_id, {"fields": []}),
                "flows.update_data_store_schema",
            )
        ctx.resource.pop(SCHEMA_KEY, None)
        return ok(ctx)
    if not isinstance(ctx.value, dict):
        raise unsupported(ctx, "flow.data_store_schema", "value must be an object")
    raw = ctx.value.get("fields")
    items = raw if isinstance(raw, list) else []
    fields = [build_data_store_schema_field(f if isinstance(f, dict) else {}) for f in items]
    return await _commit_schema_fields(ctx, env, fields)


async def handle_schema_fields(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append to, replace or clear the schema field list."""
    fields = staged_list(ensure_dict(ctx.resource, SCHEMA_KEY), "fields")
    apply_collection(ctx, fields, build_data_store_schema_field, "flow.data_store_schema.fields")
    return await _commit_schema_fields(ctx, env, fields)


async def handle_schema_field_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set, insert or remove the schema field at an index."""
    fields = staged_list(ensure_dict(ctx.resource, SCHEMA_KEY), "fields")
    if not apply_indexed(ctx, fields, match.index_group(1), build_data_store_schema_field):
        return ok(ctx)
    return await _commit_schema_fields(ctx, env, fields)


async def handle_schema_field_property(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or remove one property of a schema field."""
    index, prop = match.index_group(1), match.group(2)
    target = f"flow.data_store_schema.fields[{index}].{prop}"
    if ctx.operation == "put" or (ctx.operation == "remove" and prop == "id"):
        raise unsupported(ctx, target)
    fields = staged_list(ensure_dict(ctx.resource, SCHEMA_KEY), "fields")
    element = element_at(fields, index, build_data_store_schema_field)
    if ctx.operation == "set":
        element[prop] = decode_json_string(ctx.value)
    else:
        element.pop(prop, None)
    return await _commit_schema_fields(ctx, env, fields)


def register_flow_processors(registry: ProcessorRegistry) -> None:
    """Register flow field and schema processors."""
    registry.register(
        "flow_name",
        patterns.FLOW_NAME,
        handle_name,
        family=FAMILY,
        description="Set the flow name",
        failure_message="Failed to update flow name",
    )
    registry.register(
        "flow_response_template",
        patterns.FLOW_RESPONSE_TEMPLATE,
        handle_response_template,
        family=FAMILY,
        description="Set the flow response template",
        failure_message="Failed to update response template",
    )
    registry.register(
        "flow_schema",
        patterns.FLOW_SCHEMA_BASE,
        handle_schema_base,
        family=FAMILY,
        description="Replace the data-store schema",
        failure_message="Failed to update data store schema",
    )
    registry.register(
        "flow_schema_fields",
        patterns.FLOW_SCHEMA_FIELDS_APPEND,
        handle_schema_fields,
        family=FAMILY,
        description="Append a data-store schema field",
        failure_message="Failed to add data store field",
    )
    registry.register(
        "flow_schema_field_indexed",
        patterns.FLOW_SCHEMA_FIELDS_INDEXED,
        handle_schema_field_indexed,
        family=FAMILY,
        description="Set, insert or remove a schema field by index",
        failure_message="Failed to update data store field",
    )
    registry.register(
        "flow_schema_field_property",
        patterns.FLOW_SCHEMA_FIELD_PROPERTY,
        handle_schema_field_property,
        family=FAMILY,
        description="Set one property of a schema field",
        failure_message="Failed to update data store field",
    )
