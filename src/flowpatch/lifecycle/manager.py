"""Node and edge lifecycle: backing entities, rollback, cascading removal.

Creating a process node runs a small state machine::

    validated -> entity-created -> resource-updated
                      |
                      +-- any failure --> rollback (compensating delete)

Every creation is recorded in the :class:`~flowpatch.lifecycle.intents.IntentLog`
before the remote call, so a failed rollback is never silently lost.

Removal is the reverse and is best-effort on the entity side: a node whose
entity cannot be deleted is still removed from the graph, together with
every edge touching it.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from flowpatch.lifecycle.colors import assign_color
from flowpatch.lifecycle.intents import CreationIntent, IntentLog
from flowpatch.models import ENTITY_MAP_KEYS, SERVICE_NAMES, STRUCTURAL_NODE_TYPES, NodeType
from flowpatch.observability.logging import get_logger
from flowpatch.patch.defaults import (
    build_agent_schema_field,
    build_condition,
    build_data_store_field,
    build_edge,
    build_node,
    build_prompt_message,
)
from flowpatch.patch.errors import (
    EdgeEndpointError,
    NodeRemovalForbiddenError,
    PersistenceError,
    PreconditionError,
    RollbackError,
    UnsupportedOperationError,
)
from flowpatch.patch.navigator import ensure_dict

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from flowpatch.services.base import EntityService, ServiceBundle

log = get_logger(__name__)

_DEFAULT_NAMES = {
    NodeType.AGENT: "Agent {id}",
    NodeType.DATA_STORE: "Data Store {id}",
    NodeType.IF: "If Node {id}",
}


def parse_node_type(raw: Any) -> NodeType:
    """Coerce *raw* to a :class:`NodeType`.

    Raises:
        UnsupportedOperationError: If *raw* is not a known node type.
    """
    try:
        return NodeType(raw)
    except ValueError as e:
        raise UnsupportedOperationError(f"Unsupported node type: {raw!r}") from e


def entity_fields(
    node_type: NodeType, node_id: str, data: dict[str, Any], color: str
) -> dict[str, Any]:
    """Build the fully-defaulted entity payload for a new process node."""
    name = data.get("name") or _DEFAULT_NAMES[node_type].format(id=node_id)
    fields: dict[str, Any] = {**data, "id": node_id, "name": name, "color": color}
    fields.pop("type", None)
    fields.pop("nodeType", None)
    fields.pop("position", None)

    if node_type == NodeType.AGENT:
        fields["promptMessages"] = _built(data.get("promptMessages"), build_prompt_message)
        fields["schemaFields"] = _built(data.get("schemaFields"), build_agent_schema_field)
    elif node_type == NodeType.DATA_STORE:
        fields["dataStoreFields"] = _built(data.get("dataStoreFields"), build_data_store_field)
    else:
        fields["logicOperator"] = data.get("logicOperator") or "AND"
        fields["conditions"] = _built(data.get("conditions"), build_condition)
    return fields


def _built(items: Any, builder: Callable[[dict[str, Any]], dict[str, Any]]) -> list[dict[str, Any]]:
    """Default-build every element of *items*; non-object elements become defaults."""
    if not isinstance(items, list):
        return []
    return [builder(item if isinstance(item, dict) else {}) for item in items]


class NodeLifecycleManager:
    """Creates and removes graph nodes together with their backing entities.

    Args:
        services: Injected persistence collaborators. Without them nodes
            can still be removed locally, but not created.
        palette: Color palette for new process nodes.
        intent_log: Write-ahead log of creations. A fresh in-memory log is
            used when omitted.
    """

    def __init__(
        self,
        services: ServiceBundle | None,
        *,
        palette: Sequence[str] | None = None,
        intent_log: IntentLog | None = None,
    ) -> None:
        self._services = services
        self._palette = list(palette) if palette else None
        self.intent_log = intent_log if intent_log is not None else IntentLog()

    # -- Creation --------------------------------------------------------------

    def validate_creation(
        self,
        resource: dict[str, Any],
        flow_id: str | None,
        node_id: str | None,
        node_type: Any,
        position: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Check creation preconditions and build the node descriptor.

        Mutates nothing. Used directly by the preview phase.

        Raises:
            PreconditionError: If the flow id or node id is missing, or the
                node id is already taken.
            UnsupportedOperationError: If the node type is unknown.
        """
        if not flow_id:
            raise PreconditionError("Flow ID is required for node creation")
        if not node_id:
            raise PreconditionError("A predetermined node id is required for node creation")
        kind = parse_node_type(node_type)
        if any(n.get("id") == node_id for n in resource.get("nodes") or []):
            raise PreconditionError(f"Node '{node_id}' already exists")
        return build_node({"id": node_id, "type": kind, "position": position})

    async def create_node(
        self,
        resource: dict[str, Any],
        flow_id: str | None,
        node_id: str | None,
        node_type: Any,
        data: dict[str, Any] | None = None,
        position: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a node and its backing entity, rolling back on failure.

        Args:
            resource: Flow resource; gains the node and the entity on success.
            flow_id: Stable flow id (required).
            node_id: Predetermined node id, used as the entity id (required).
            node_type: One of :class:`NodeType`.
            data: Partial entity fields (name, color, promptMessages, ...).
            position: Canvas position of the node.

        Returns:
            The node descriptor added to ``resource["nodes"]``.

        Raises:
            PreconditionError: On missing ids.
            PersistenceError: If the entity or the node list could not be
                persisted. Any created entity has been rolled back.
        """
        node = self.validate_creation(resource, flow_id, node_id, node_type, position)
        if self._services is None:
            raise PreconditionError("Persistence services are required for node creation")
        assert flow_id is not None and node_id is not None
        kind = NodeType(node["type"])
        data = dict(data or {})

        if kind in STRUCTURAL_NODE_TYPES:
            nodes, edges = self._staged_graph(resource)
            nodes.append(node)
            await self._persist_graph(flow_id, nodes, edges)
            resource["nodes"] = nodes
            log.info("node_created", node_id=node_id, node_type=str(kind), flow_id=flow_id)
            return node

        color = data.get("color") or assign_color(resource, self._palette)
        fields = entity_fields(kind, node_id, data, color)
        service = self._services.entity_service(kind)
        assert service is not None
        action = f"{SERVICE_NAMES[kind]}.create"

        intent = self.intent_log.begin(flow_id, node_id, str(kind))
        log.debug("node_creation_started", node_id=node_id, node_type=str(kind), color=color)

        try:
            result = await service.create(flow_id, node_id, fields)
        except Exception as e:
            await self._rollback(intent, kind, node_id, str(e))
            raise
        if not result.success:
            await self._rollback(intent, kind, node_id, result.error or "")
            raise PersistenceError(action, result.error or "")

        # entity-created: any failure from here on must compensate
        nodes, edges = self._staged_graph(resource)
        nodes.append(node)
        try:
            await self._persist_graph(flow_id, nodes, edges)
        except Exception as e:
            await self._rollback(intent, kind, node_id, str(e))
            raise

        entity_key = ENTITY_MAP_KEYS[kind]
        ensure_dict(resource, entity_key)[node_id] = fields
        resource["nodes"] = nodes
        self.intent_log.commit(intent)
        self._invalidate(entity_key, node_id)
        log.info("node_created", node_id=node_id, node_type=str(kind), flow_id=flow_id)
        return node

    async def _rollback(
        self, intent: CreationIntent, kind: NodeType, node_id: str, reason: str
    ) -> None:
        """Best-effort compensating delete. Never raises."""
        log.warning("node_creation_rollback", node_id=node_id, node_type=str(kind), reason=reason)
        service = self._entity_service(kind)
        if service is None:
            self.intent_log.compensate(intent, reason)
            return
        try:
            result = await service.delete(node_id)
            detail = None if result.success else (result.error or "delete failed")
        except Exception as e:  # noqa: BLE001 - rollback must not mask the original error
            detail = str(e)
        if detail is None:
            self.intent_log.compensate(intent, reason)
            return
        error = RollbackError(node_id, detail)
        self.intent_log.orphan(intent, str(error))
        log.error("node_rollback_failed", node_id=node_id, error=str(error))

    async def initialize_entities(
        self,
        resource: dict[str, Any],
        flow_id: str,
        entries: list[dict[str, Any]],
    ) -> list[str]:
        """Create several backing entities concurrently.

        Each entry is ``{"id", "type", ...fields}``. Creations run with
        ``asyncio.gather`` and complete in no particular order. If any
        fails, the ones that succeeded are rolled back and the first
        failure is raised.

        Returns:
            Ids of the created entities, in entry order.
        """
        if not flow_id:
            raise PreconditionError("Flow ID is required for entity initialization")
        if self._services is None:
            raise PreconditionError("Persistence services are required for entity initialization")
        services = self._services

        planned: list[tuple[CreationIntent, NodeType, dict[str, Any]]] = []
        shadow = {key: dict(resource.get(key) or {}) for key in ENTITY_MAP_KEYS.values()}
        for entry in entries:
            kind = parse_node_type(entry.get("type"))
            node_id = entry.get("id")
            if not node_id:
                raise PreconditionError("Every initialized entity needs an id")
            if kind in STRUCTURAL_NODE_TYPES:
                continue
            color = entry.get("color") or assign_color(shadow, self._palette)
            fields = entity_fields(kind, node_id, entry, color)
            shadow[ENTITY_MAP_KEYS[kind]][node_id] = fields
            planned.append((self.intent_log.begin(flow_id, node_id, str(kind)), kind, fields))

        async def create(kind: NodeType, fields: dict[str, Any]) -> Any:
            service = services.entity_service(kind)
            assert service is not None
            return await service.create(flow_id, fields["id"], fields)

        results = await asyncio.gather(*(create(kind, fields) for _, kind, fields in planned))

        failures = [
            (kind, r.error or "") for (_, kind, _), r in zip(planned, results, strict=True)
            if not r.success
        ]
        if failures:
            for (intent, kind, fields), r in zip(planned, results, strict=True):
                if r.success:
                    await self._rollback(intent, kind, fields["id"], "batch initialization failed")
                else:
                    self.intent_log.compensate(intent, r.error)
            kind, error = failures[0]
            raise PersistenceError(f"{SERVICE_NAMES[kind]}.create", error)

        for intent, kind, fields in planned:
            resource.setdefault(ENTITY_MAP_KEYS[kind], {})[fields["id"]] = fields
            self.intent_log.commit(intent)
        log.info("entities_initialized", flow_id=flow_id, count=len(planned))
        return [fields["id"] for _, _, fields in planned]

    # -- Removal ---------------------------------------------------------------

    async def delete_node(
        self, resource: dict[str, Any], flow_id: str | None, index: int
    ) -> dict[str, Any]:
        """Remove the node at *index* and every edge touching it.

        The backing entity is deleted first, best-effort. The node and edge
        lists are then staged without the node and written through the flow
        service when *flow_id* is set; the resource only sees them once that
        write succeeded.

        Returns:
            The removed node descriptor.

        Raises:
            PreconditionError: If there is no node at *index*.
            NodeRemovalForbiddenError: For start/end nodes.
            PersistenceError: If writing nodes and edges failed. The node
                and its edges are still in the resource.
        """
        nodes, edges = self._staged_graph(resource)
        if not 0 <= index < len(nodes) or not isinstance(nodes[index], dict):
            raise PreconditionError(f"Node at index {index} not found")
        node = nodes[index]
        node_id = node.get("id", "")
        node_type = node.get("type", "")
        if node_type in STRUCTURAL_NODE_TYPES:
            raise NodeRemovalForbiddenError(node_id, node_type)

        await self._delete_entity(resource, node_type, node_id)

        del nodes[index]
        kept = [
            e
            for e in edges
            if not isinstance(e, dict) or node_id not in (e.get("source"), e.get("target"))
        ]
        await self._persist_graph(flow_id, nodes, kept)
        resource["nodes"] = nodes
        resource["edges"] = kept
        log.info(
            "node_removed",
            node_id=node_id,
            node_type=node_type,
            edges_removed=len(edges) - len(kept),
        )
        return node

    async def _delete_entity(self, resource: dict[str, Any], node_type: str, node_id: str) -> None:
        if node_type not in ENTITY_MAP_KEYS:
            return
        entity_key = ENTITY_MAP_KEYS[NodeType(node_type)]
        service = self._entity_service(node_type)
        if service is None:
            # Nothing remote to delete
            entities = resource.get(entity_key)
            if isinstance(entities, dict):
                entities.pop(node_id, None)
            return
        try:
            result = await service.delete(node_id)
        except Exception as e:  # noqa: BLE001 - entity delete is best-effort
            log.warning("entity_delete_failed", node_id=node_id, node_type=node_type, error=str(e))
            return
        if not result.success:
            log.warning(
                "entity_delete_failed", node_id=node_id, node_type=node_type, error=result.error
            )
            return
        entities = resource.get(entity_key)
        if isinstance(entities, dict):
            entities.pop(node_id, None)
        self._invalidate(entity_key, node_id)

    # -- Edges -----------------------------------------------------------------

    def validate_edge(self, resource: dict[str, Any], value: dict[str, Any]) -> dict[str, Any]:
        """Build an edge and check both endpoints exist. Mutates nothing.

        Raises:
            EdgeEndpointError: If the source or target node is missing.
            PreconditionError: If the edge id is already taken.
        """
        edge = build_edge(value)
        node_ids = {n.get("id") for n in resource.get("nodes") or []}
        missing_source = edge["source"] not in node_ids
        missing_target = edge["target"] not in node_ids
        if missing_source or missing_target:
            missing = "both" if missing_source and missing_target else (
                "source" if missing_source else "target"
            )
            raise EdgeEndpointError(edge["source"], edge["target"], missing)
        if any(e.get("id") == edge["id"] for e in resource.get("edges") or []):
            raise PreconditionError(f"Edge '{edge['id']}' already exists")
        return edge

    async def add_edge(
        self, resource: dict[str, Any], flow_id: str | None, value: dict[str, Any]
    ) -> dict[str, Any]:
        """Append a validated edge once the graph write succeeded."""
        edge = self.validate_edge(resource, value)
        nodes, edges = self._staged_graph(resource)
        edges.append(edge)
        await self._persist_graph(flow_id, nodes, edges)
        resource["edges"] = edges
        log.debug("edge_added", edge_id=edge["id"], source=edge["source"], target=edge["target"])
        return edge

    async def remove_edge(
        self, resource: dict[str, Any], flow_id: str | None, index: int
    ) -> dict[str, Any] | None:
        """Remove the edge at *index*; out of range is a no-op returning None."""
        nodes, edges = self._staged_graph(resource)
        if not 0 <= index < len(edges):
            log.debug("edge_remove_out_of_range", index=index, edges=len(edges))
            return None
        edge = edges.pop(index)
        await self._persist_graph(flow_id, nodes, edges)
        resource["edges"] = edges
        return edge

    # -- Helpers ---------------------------------------------------------------

    @staticmethod
    def _staged_graph(resource: dict[str, Any]) -> tuple[list[Any], list[Any]]:
        """Copies of the node and edge lists to edit before a graph write."""
        nodes = resource.get("nodes")
        edges = resource.get("edges")
        return (
            list(nodes) if isinstance(nodes, list) else [],
            list(edges) if isinstance(edges, list) else [],
        )

    async def _persist_graph(
        self, flow_id: str | None, nodes: list[Any], edges: list[Any]
    ) -> None:
        if not flow_id or self._services is None:
            log.warning(
                "in_memory_only_update",
                reason="no flow id" if not flow_id else "no services",
                target="nodes_and_edges",
            )
            return
        result = await self._services.flows.update_nodes_and_edges(flow_id, nodes, edges)
        if not result.success:
            raise PersistenceError("flows.update_nodes_and_edges", result.error or "")

    def _entity_service(self, node_type: Any) -> EntityService | None:
        if self._services is None:
            return None
        return self._services.entity_service(node_type)

    def _invalidate(self, kind: str, entity_id: str) -> None:
        invalidator = self._services.invalidator if self._services else None
        if invalidator is None:
            return
        try:
            invalidator.invalidate(kind, entity_id)
        except Exception as e:  # noqa: BLE001 - cache invalidation is advisory
            log.warning("cache_invalidation_failed", kind=kind, entity_id=entity_id, error=str(e))
