"""Shared plumbing for operation processors.

Handlers follow one shape: resolve ids from the match, make sure their own
entity container exists, stage the change on a copy, persist the changed
sub-field when a flow id is resolvable, then commit the copy into the
resource. A persistence failure therefore leaves the resource untouched.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flowpatch.config import FlowPatchConfig
from flowpatch.lifecycle.colors import assign_color
from flowpatch.lifecycle.manager import entity_fields
from flowpatch.models import ENTITY_MAP_KEYS, SERVICE_NAMES
from flowpatch.observability.logging import get_logger
from flowpatch.patch.context import OperationResult
from flowpatch.patch.errors import (
    ErrorContext,
    ErrorHandler,
    PersistenceError,
    UnsupportedOperationError,
)
from flowpatch.patch.navigator import Builder, append, ensure_dict, insert_at, remove_at, set_at

if TYPE_CHECKING:
    from collections.abc import Callable

    from flowpatch.lifecycle.manager import NodeLifecycleManager
    from flowpatch.models import NodeType
    from flowpatch.patch.context import OperationContext
    from flowpatch.patch.grammar import PathMatch
    from flowpatch.patch.registry import Handler
    from flowpatch.services.base import ServiceBundle, ServiceResult

log = get_logger(__name__)

_JSON_SHAPED = re.compile(r"^\s*[\[{].*[\]}]\s*$", re.DOTALL)


@dataclass
class ProcessorEnv:
    """Collaborators handed to every handler.

    Attributes:
        lifecycle: Node/edge lifecycle manager.
        errors: Error handler, used for locally repaired problems.
        services: Persistence collaborators; None means in-memory only.
        config: Session configuration.
    """

    lifecycle: NodeLifecycleManager
    errors: ErrorHandler
    services: ServiceBundle | None = None
    config: FlowPatchConfig = field(default_factory=FlowPatchConfig)

    def persistence_target(self, ctx: OperationContext, target: str) -> str | None:
        """Return the flow id to persist under, or None for an in-memory update.

        The in-memory fallback is logged: it can leave the resource out of
        sync with the server.
        """
        flow_id = ctx.resolve_flow_id()
        if flow_id and self.services is not None:
            return flow_id
        log.warning(
            "in_memory_only_update",
            path=ctx.path,
            target=target,
            reason="no flow id" if not flow_id else "no services",
        )
        return None

    def invalidate(self, kind: str, entity_id: str) -> None:
        """Invalidate cached reads of one entity; failures are only logged."""
        invalidator = self.services.invalidator if self.services else None
        if invalidator is None:
            return
        try:
            invalidator.invalidate(kind, entity_id)
        except Exception as e:  # noqa: BLE001 - cache invalidation is advisory
            log.warning("cache_invalidation_failed", kind=kind, entity_id=entity_id, error=str(e))

    def report_parse_error(
        self, ctx: OperationContext, processor: str
    ) -> Callable[[Exception], None]:
        """Callback for default-builders that repaired a malformed payload."""

        def report(error: Exception) -> None:
            self.errors.handle_debug(
                error,
                ErrorContext(ctx.operation, ctx.path, processor, input_data=ctx.value),
            )

        return report


def require(result: ServiceResult, action: str) -> Any:
    """Return ``result.value`` or raise :class:`PersistenceError`."""
    if not result.success:
        raise PersistenceError(action, result.error or "")
    return result.value


def unsupported(ctx: OperationContext, target: str, hint: str = "") -> UnsupportedOperationError:
    message = f"Unsupported operation '{ctx.operation}' for {target}"
    if hint:
        message += f"; {hint}"
    return UnsupportedOperationError(message)


def decode_json_string(value: Any) -> Any:
    """Decode strings shaped like a JSON object or array; anything else is returned as is."""
    if isinstance(value, str) and _JSON_SHAPED.match(value):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def entity(resource: dict[str, Any], map_key: str, entity_id: str) -> dict[str, Any]:
    """Return ``resource[map_key][entity_id]``, vivifying both levels."""
    return ensure_dict(ensure_dict(resource, map_key), entity_id)


def staged_list(container: dict[str, Any], key: str) -> list[Any]:
    """Deep copy of ``container[key]`` as a list (empty when absent or not a list)."""
    value = container.get(key)
    return copy.deepcopy(value) if isinstance(value, list) else []


def apply_collection(
    ctx: OperationContext, items: list[Any], builder: Builder, target: str
) -> None:
    """Apply a verb addressed at a whole collection (no index).

    ``put`` appends one built element, ``set`` replaces every element from
    a list value, ``remove`` empties the collection.
    """
    if ctx.operation == "put":
        append(items, ctx.value, builder)
    elif ctx.operation == "set":
        if not isinstance(ctx.value, list):
            raise unsupported(ctx, target, "set on a collection requires a list value")
        items[:] = [builder(v if isinstance(v, dict) else {}) for v in ctx.value]
    else:
        items.clear()


def apply_indexed(
    ctx: OperationContext, items: list[Any], index: int, builder: Builder
) -> bool:
    """Apply a verb addressed at ``items[index]``.

    Returns:
        False when nothing changed (remove past the end), True otherwise.
    """
    if ctx.operation == "set":
        set_at(items, index, ctx.value, builder)
    elif ctx.operation == "put":
        insert_at(items, index, ctx.value, builder)
    elif index < len(items):
        remove_at(items, index)
    else:
        log.debug("remove_out_of_range", path=ctx.path, index=index, length=len(items))
        return False
    return True


def ok(ctx: OperationContext) -> OperationResult:
    return OperationResult.ok(ctx.resource)


def make_base_handler(kind: NodeType, family: str, default_color: str | None = None) -> Handler:
    """Build the whole-entity handler (``<family>.<id>``) for one node type.

    ``set`` creates or replaces the backing entity through its service,
    ``remove`` deletes it. Graph nodes are not touched; node creation and
    removal go through ``flow.nodes``.

    Without an explicit or existing color the entity gets *default_color*,
    or the next palette color when that is None.
    """
    map_key = ENTITY_MAP_KEYS[kind]
    service_name = SERVICE_NAMES[kind]

    async def handle_base(
        ctx: OperationContext, match: PathMatch, env: ProcessorEnv
    ) -> OperationResult:
        entity_id = match.group(1)
        entities = ensure_dict(ctx.resource, map_key)
        if ctx.operation == "put":
            raise unsupported(ctx, f"{family}.{entity_id}", "use set")

        service = env.services.entity_service(kind) if env.services else None
        flow_id = env.persistence_target(ctx, f"{family}.{entity_id}")

        if ctx.operation == "remove":
            if flow_id and service is not None:
                require(await service.delete(entity_id), f"{service_name}.delete")
                env.invalidate(map_key, entity_id)
            entities.pop(entity_id, None)
            return ok(ctx)

        if not isinstance(ctx.value, dict):
            raise unsupported(ctx, f"{family}.{entity_id}", "value must be an object")
        current = entities.get(entity_id) or {}
        color = (
            ctx.value.get("color")
            or current.get("color")
            or default_color
            or assign_color(ctx.resource, env.config.color_palette)
        )
        fields = entity_fields(kind, entity_id, ctx.value, color)
        if flow_id and service is not None:
            require(await service.create(flow_id, entity_id, fields), f"{service_name}.create")
            env.invalidate(map_key, entity_id)
        entities[entity_id] = fields
        return ok(ctx)

    return handle_base
