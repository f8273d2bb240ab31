"""Agent processors.

Covers the agent entity itself, its scalar fields, and three levels of
nested collections::

    agents.<id>.promptMessages[n]
    agents.<id>.promptMessages[n].messages[m]
    agents.<id>.promptMessages[n].messages[m].blocks[k]

plus the structured-output ``schemaFields``. Any change below
``promptMessages`` persists the whole prompt message list through
``AgentService.update_prompt_messages``; schema field changes persist
through ``update_schema_fields``.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

from flowpatch.models import NodeType
from flowpatch.patch import patterns
from flowpatch.patch.defaults import (
    build_agent_schema_field,
    build_nested_message,
    build_prompt_block,
    build_prompt_message,
)
from flowpatch.patch.navigator import element_at, navigate_to_path
from flowpatch.patch.processors.base import (
    apply_collection,
    apply_indexed,
    decode_json_string,
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
    from flowpatch.patch.navigator import Builder
    from flowpatch.patch.processors.base import ProcessorEnv
    from flowpatch.patch.registry import ProcessorRegistry

FAMILY = "agents"
MAP_KEY = "agents"

# Prompt message fields holding block lists.
_BLOCK_LIST_FIELDS = {
    "promptBlocks": "Unnamed Block",
    "userPromptBlocks": "User Block",
    "assistantPromptBlocks": "Assistant Block",
}
_IMMUTABLE_FIELDS = frozenset({"id", "type"})


def _message_builder(ctx: OperationContext, env: ProcessorEnv, processor: str) -> Builder:
    return partial(build_prompt_message, on_parse_error=env.report_parse_error(ctx, processor))


async def _commit_prompt_messages(
    ctx: OperationContext, env: ProcessorEnv, agent_id: str, messages: list[dict[str, Any]]
) -> OperationResult:
    agent = entity(ctx.resource, MAP_KEY, agent_id)
    flow_id = env.persistence_target(ctx, f"agents.{agent_id}.promptMessages")
    if flow_id and env.services:
        require(
            await env.services.agents.update_prompt_messages(flow_id, agent_id, messages),
            "agents.update_prompt_messages",
        )
        env.invalidate(MAP_KEY, agent_id)
    agent["promptMessages"] = messages
    return ok(ctx)


async def _commit_schema_fields(
    ctx: OperationContext, env: ProcessorEnv, agent_id: str, fields: list[dict[str, Any]]
) -> OperationResult:
    agent = entity(ctx.resource, MAP_KEY, agent_id)
    flow_id = env.persistence_target(ctx, f"agents.{agent_id}.schemaFields")
    if flow_id and env.services:
        require(
            await env.services.agents.update_schema_fields(flow_id, agent_id, fields),
            "agents.update_schema_fields",
        )
        env.invalidate(MAP_KEY, agent_id)
    agent["schemaFields"] = fields
    return ok(ctx)


# -- Agent fields -------------------------------------------------------------


async def handle_field(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or remove a scalar agent field.

    Only ``name`` is persisted; other fields are kept in the resource.
    """
    agent_id, name = match.group(1), match.group(2)
    target = f"agents.{agent_id}.{name}"
    if ctx.operation == "put" or name in _IMMUTABLE_FIELDS:
        raise unsupported(ctx, target)
    agent = entity(ctx.resource, MAP_KEY, agent_id)

    if ctx.operation == "remove":
        agent.pop(name, None)
        return ok(ctx)

    if name == "name":
        flow_id = env.persistence_target(ctx, target)
        if flow_id and env.services:
            require(
                await env.services.agents.update_name(flow_id, agent_id, str(ctx.value)),
                "agents.update_name",
            )
            env.invalidate(MAP_KEY, agent_id)
    agent[name] = ctx.value
    return ok(ctx)


# -- Prompt messages ----------------------------------------------------------


async def handle_prompt_messages(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append, replace or clear the prompt message list."""
    agent_id = match.group(1)
    messages = staged_list(entity(ctx.resource, MAP_KEY, agent_id), "promptMessages")
    builder = _message_builder(ctx, env, "agent_prompt_messages")
    apply_collection(ctx, messages, builder, f"agents.{agent_id}.promptMessages")
    return await _commit_prompt_messages(ctx, env, agent_id, messages)


async def handle_prompt_message_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set, insert or remove one prompt message."""
    agent_id, index = match.group(1), match.index_group(2)
    messages = staged_list(entity(ctx.resource, MAP_KEY, agent_id), "promptMessages")
    builder = _message_builder(ctx, env, "agent_prompt_message_indexed")
    if not apply_indexed(ctx, messages, index, builder):
        return ok(ctx)
    return await _commit_prompt_messages(ctx, env, agent_id, messages)


async def handle_prompt_message_field(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or remove one field of a prompt message."""
    agent_id, index, name = match.group(1), match.index_group(2), match.group(3)
    target = f"agents.{agent_id}.promptMessages[{index}].{name}"
    if ctx.operation == "put" or name in _IMMUTABLE_FIELDS:
        raise unsupported(ctx, target)

    messages = staged_list(entity(ctx.resource, MAP_KEY, agent_id), "promptMessages")
    message = element_at(messages, index, _message_builder(ctx, env, "agent_prompt_message_field"))
    if ctx.operation == "remove":
        message.pop(name, None)
    elif name in _BLOCK_LIST_FIELDS:
        if not isinstance(ctx.value, list):
            raise unsupported(ctx, target, "a list of blocks is required")
        message[name] = [
            build_prompt_block(b if isinstance(b, dict) else {}, name=_BLOCK_LIST_FIELDS[name])
            for b in ctx.value
        ]
    else:
        message[name] = ctx.value
    return await _commit_prompt_messages(ctx, env, agent_id, messages)


# -- Nested messages ----------------------------------------------------------


def _staged_prompt_messages(ctx: OperationContext, agent_id: str) -> dict[str, list[Any]]:
    agent = entity(ctx.resource, MAP_KEY, agent_id)
    return {"promptMessages": staged_list(agent, "promptMessages")}


def _walk(
    ctx: OperationContext,
    env: ProcessorEnv,
    staged: dict[str, list[Any]],
    path: str,
    processor: str,
) -> Any:
    """Navigate *staged* along *path*, padding every list with its default-builder."""
    builders: dict[str, Builder] = {
        "promptMessages": _message_builder(ctx, env, processor),
        "messages": build_nested_message,
        "blocks": build_prompt_block,
    }
    return navigate_to_path(staged, path, builders=builders).target


async def handle_messages(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append, replace or clear the messages nested in a prompt message."""
    agent_id, n = match.group(1), match.index_group(2)
    staged = _staged_prompt_messages(ctx, agent_id)
    nested = _walk(ctx, env, staged, f"promptMessages[{n}].messages", "agent_messages")
    apply_collection(ctx, nested, build_nested_message, ctx.path)
    return await _commit_prompt_messages(ctx, env, agent_id, staged["promptMessages"])


async def handle_message_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set, insert or remove one nested message."""
    agent_id, n, m = match.group(1), match.index_group(2), match.index_group(3)
    staged = _staged_prompt_messages(ctx, agent_id)
    nested = _walk(ctx, env, staged, f"promptMessages[{n}].messages", "agent_message_indexed")
    if not apply_indexed(ctx, nested, m, build_nested_message):
        return ok(ctx)
    return await _commit_prompt_messages(ctx, env, agent_id, staged["promptMessages"])


async def handle_message_field(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set or remove one field of a nested message."""
    agent_id, n, m, name = (
        match.group(1),
        match.index_group(2),
        match.index_group(3),
        match.group(4),
    )
    if ctx.operation == "put" or name == "id":
        raise unsupported(ctx, ctx.path)
    staged = _staged_prompt_messages(ctx, agent_id)
    target = _walk(ctx, env, staged, f"promptMessages[{n}].messages[{m}]", "agent_message_field")
    if ctx.operation == "remove":
        target.pop(name, None)
    else:
        target[name] = ctx.value
    return await _commit_prompt_messages(ctx, env, agent_id, staged["promptMessages"])


async def handle_blocks(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append, replace or clear the blocks of a nested message."""
    agent_id, n, m = match.group(1), match.index_group(2), match.index_group(3)
    staged = _staged_prompt_messages(ctx, agent_id)
    path = f"promptMessages[{n}].messages[{m}].blocks"
    blocks = _walk(ctx, env, staged, path, "agent_message_blocks")
    apply_collection(ctx, blocks, build_prompt_block, ctx.path)
    return await _commit_prompt_messages(ctx, env, agent_id, staged["promptMessages"])


async def handle_block_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set, insert or remove one block of a nested message."""
    agent_id, n, m, k = (
        match.group(1),
        match.index_group(2),
        match.index_group(3),
        match.index_group(4),
    )
    staged = _staged_prompt_messages(ctx, agent_id)
    blocks = _walk(
        ctx, env, staged, f"promptMessages[{n}].messages[{m}].blocks", "agent_message_block_indexed"
    )
    if not apply_indexed(ctx, blocks, k, build_prompt_block):
        return ok(ctx)
    return await _commit_prompt_messages(ctx, env, agent_id, staged["promptMessages"])


# -- Schema fields ------------------------------------------------------------


async def handle_schema_fields(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Append, replace or clear the structured-output fields."""
    agent_id = match.group(1)
    fields = staged_list(entity(ctx.resource, MAP_KEY, agent_id), "schemaFields")
    apply_collection(ctx, fields, build_agent_schema_field, f"agents.{agent_id}.schemaFields")
    return await _commit_schema_fields(ctx, env, agent_id, fields)


async def handle_schema_field_indexed(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set, insert or remove one structured-output field."""
    agent_id, index = match.group(1), match.index_group(2)
    fields = staged_list(entity(ctx.resource, MAP_KEY, agent_id), "schemaFields")
    if not apply_indexed(ctx, fields, index, build_agent_schema_field):
        return ok(ctx)
    return await _commit_schema_fields(ctx, env, agent_id, fields)


async def handle_schema_field_property(
    ctx: OperationContext, match: PathMatch, env: ProcessorEnv
) -> OperationResult:
    """Set one property of a structured-output field.

    JSON-shaped strings (``"[...]"``, ``"{...}"``) are decoded first.
    """
    agent_id, index, name = match.group(1), match.index_group(2), match.group(3)
    if ctx.operation != "set" or name == "id":
        raise unsupported(ctx, f"agents.{agent_id}.schemaFields[{index}].{name}")
    fields = staged_list(entity(ctx.resource, MAP_KEY, agent_id), "schemaFields")
    element_at(fields, index, build_agent_schema_field)[name] = decode_json_string(ctx.value)
    return await _commit_schema_fields(ctx, env, agent_id, fields)


def register_agent_processors(registry: ProcessorRegistry) -> None:
    """Register every agent processor."""
    table = [
        ("agent", patterns.AGENT_BASE, make_base_handler(NodeType.AGENT, FAMILY),
         "Create, replace or delete an agent", "Failed to update agent"),
        ("agent_field", patterns.AGENT_FIELD, handle_field,
         "Set an agent field", "Failed to update agent"),
        ("agent_prompt_messages", patterns.AGENT_PROMPT_MESSAGES_APPEND, handle_prompt_messages,
         "Append a prompt message", "Failed to add prompt message"),
        ("agent_prompt_message_indexed", patterns.AGENT_PROMPT_MESSAGES_INDEXED,
         handle_prompt_message_indexed,
         "Set, insert or remove a prompt message", "Failed to update prompt message"),
        ("agent_prompt_message_field", patterns.AGENT_PROMPT_MESSAGE_FIELD,
         handle_prompt_message_field,
         "Set a prompt message field", "Failed to update prompt message"),
        ("agent_messages", patterns.AGENT_MESSAGES_APPEND, handle_messages,
         "Append a nested message", "Failed to update prompt message"),
        ("agent_message_indexed", patterns.AGENT_MESSAGES_INDEXED, handle_message_indexed,
         "Set, insert or remove a nested message", "Failed to update prompt message"),
        ("agent_message_field", patterns.AGENT_MESSAGE_FIELD, handle_message_field,
         "Set a nested message field", "Failed to update prompt message"),
        ("agent_message_blocks", patterns.AGENT_MESSAGE_BLOCKS_APPEND, handle_blocks,
         "Append a prompt block", "Failed to update prompt message"),
        ("agent_message_block_indexed", patterns.AGENT_MESSAGE_BLOCKS_INDEXED,
         handle_block_indexed,
         "Set, insert or remove a prompt block", "Failed to update prompt message"),
        ("agent_schema_fields", patterns.AGENT_SCHEMA_FIELDS_APPEND, handle_schema_fields,
         "Append a structured-output field", "Failed to add schema field"),
        ("agent_schema_field_indexed", patterns.AGENT_SCHEMA_FIELDS_INDEXED,
         handle_schema_field_indexed,
         "Set, insert or remove a structured-output field", "Failed to update schema field"),
        ("agent_schema_field_property", patterns.AGENT_SCHEMA_FIELD_PROPERTY,
         handle_schema_field_property,
         "Set one property of a structured-output field", "Failed to update schema field"),
    ]
    for name, pattern, handler, description, failure_message in table:
        registry.register(
            name,
            pattern,
            handler,
            family=FAMILY,
            description=description,
            failure_message=failure_message,
        )
