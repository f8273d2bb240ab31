"""Default-builders for flow sub-entities.

Each builder takes a partial payload (possibly empty) and returns a fully
populated wire dict with a stable ``id``. Array operations use them both
for the requested element and for padding placeholders, so arrays never
contain holes.

Builders validate through the pydantic models in :mod:`flowpatch.models`.
Prompt messages are the one lenient case: a payload that fails validation
is repaired into a minimal message of the same type instead of failing the
operation.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from flowpatch.models import (
    AgentSchemaField,
    DataStoreField,
    DataStoreSchemaField,
    FlowEdge,
    FlowNode,
    HistoryPromptMessage,
    IfCondition,
    NestedMessage,
    PlainPromptMessage,
    PromptBlock,
)
from flowpatch.observability.logging import get_logger

log = get_logger(__name__)

# initialValue used when a schema field is created without one
_INITIAL_VALUE_BY_TYPE = {"number": "0", "integer": "0", "boolean": "false"}


def _clean(data: dict[str, Any] | None) -> dict[str, Any]:
    """Copy *data* without None values so model defaults apply.

    Anything that is not a dict counts as an empty payload.
    """
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if v is not None}


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def build_prompt_block(
    data: dict[str, Any] | None = None, *, name: str | None = None
) -> dict[str, Any]:
    """Build a prompt block.

    Args:
        data: Partial block. ``content`` is accepted as a synonym for ``template``.
        name: Default name when *data* has none.
    """
    payload = _clean(data)
    content = payload.pop("content", None)
    if not payload.get("template") and content is not None:
        payload["template"] = _as_text(content)
    if not payload.get("name") and name:
        payload["name"] = name
    return PromptBlock.model_validate(payload).to_wire()


def _blocks(items: Any, name: str) -> list[dict[str, Any]]:
    if not isinstance(items, list):
        return []
    return [build_prompt_block(b if isinstance(b, dict) else {}, name=name) for b in items]


def build_prompt_message(
    data: dict[str, Any] | None = None,
    *,
    on_parse_error: Callable[[Exception], None] | None = None,
) -> dict[str, Any]:
    """Build a plain or history prompt message from a partial payload.

    The variant is chosen by ``type`` (anything but ``"history"`` is plain).
    Invalid payloads fall back to a minimal message of the same variant that
    keeps the caller's id and role.

    Args:
        data: Partial message.
        on_parse_error: Called with the validation error before falling
            back. Without it the error is logged at debug.
    """
    payload = _clean(data)
    is_history = payload.get("type") == "history"
    payload["type"] = "history" if is_history else "plain"

    try:
        if is_history:
            payload["userPromptBlocks"] = _blocks(payload.get("userPromptBlocks"), "User Block")
            payload["assistantPromptBlocks"] = _blocks(
                payload.get("assistantPromptBlocks"), "Assistant Block"
            )
            return HistoryPromptMessage.model_validate(payload).to_wire()
        payload["promptBlocks"] = _blocks(payload.get("promptBlocks"), "Unnamed Block")
        return PlainPromptMessage.model_validate(payload).to_wire()
    except ValidationError as e:
        if on_parse_error is not None:
            on_parse_error(e)
        else:
            log.debug(
                "prompt_message_parse_failed",
                message_type=payload["type"],
                errors=e.error_count(),
                detail=str(e),
            )
        return _fallback_prompt_message(payload, is_history)


def _fallback_prompt_message(payload: dict[str, Any], is_history: bool) -> dict[str, Any]:
    keep: dict[str, Any] = {}
    if isinstance(payload.get("id"), str) and payload["id"]:
        keep["id"] = payload["id"]
    if is_history:
        return HistoryPromptMessage(**keep).to_wire()
    if isinstance(payload.get("role"), str):
        keep["role"] = payload["role"]
    return PlainPromptMessage(**keep).to_wire()


def build_nested_message(data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a message nested under a prompt message."""
    payload = _clean(data)
    payload["blocks"] = _blocks(payload.get("blocks"), "Unnamed Block")
    return NestedMessage.model_validate(payload).to_wire()


def build_agent_schema_field(data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build an agent structured-output field."""
    return AgentSchemaField.model_validate(_clean(data)).to_wire()


def build_data_store_schema_field(data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a flow data-store schema field.

    ``initialValue`` defaults by type: ``"0"`` for number/integer,
    ``"false"`` for boolean, ``""`` otherwise.
    """
    payload = _clean(data)
    if "initialValue" in payload:
        payload["initialValue"] = _as_text(payload["initialValue"])
    else:
        payload["initialValue"] = _INITIAL_VALUE_BY_TYPE.get(payload.get("type", "string"), "")
    return DataStoreSchemaField.model_validate(payload).to_wire()


def build_data_store_field(data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a data-store node field (schema field reference plus update logic)."""
    return DataStoreField.model_validate(_clean(data)).to_wire()


def build_condition(data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build an if-node condition.

    Missing ``dataType``/``operator`` stay None, which marks the condition
    as incomplete rather than absent.
    """
    payload = _clean(data)
    for key in ("value1", "value2"):
        if key in payload:
            payload[key] = _as_text(payload[key])
    # Empty strings from editors mean "not chosen yet"
    for key in ("dataType", "operator"):
        if payload.get(key) == "":
            payload.pop(key)
    return IfCondition.model_validate(payload).to_wire()


def build_node(data: dict[str, Any]) -> dict[str, Any]:
    """Build a graph node descriptor. ``id`` and ``type`` are required."""
    return FlowNode.model_validate(_clean(data)).to_wire()


def build_edge(data: dict[str, Any]) -> dict[str, Any]:
    """Build a graph edge, generating an id when missing."""
    return FlowEdge.model_validate(_clean(data)).to_wire()
