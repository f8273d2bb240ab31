"""In-memory implementation of every service protocol.

All four services share one :class:`InMemoryBackend`, which stores flows
and entities in plain dicts and records each call. Failures can be injected
per action name (``"agents.create"``, ``"flows.update_nodes_and_edges"``)
through :meth:`InMemoryBackend.fail_on`.

Used by the CLI and by tests; a real deployment supplies its own services.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from flowpatch.observability.logging import get_logger
from flowpatch.services.base import ServiceBundle, ServiceResult

log = get_logger(__name__)


@dataclass
class InMemoryBackend:
    """Shared storage for the in-memory services.

    Attributes:
        flows: Flow records keyed by flow id.
        entities: Entity records keyed by kind (``agents``,
            ``data_store_nodes``, ``if_nodes``) then by entity id.
        calls: Every call as ``(action, args)`` in order.
        failures: Injected failures as ``action -> error text``.
    """

    flows: dict[str, dict[str, Any]] = field(default_factory=dict)
    entities: dict[str, dict[str, dict[str, Any]]] = field(
        default_factory=lambda: {"agents": {}, "data_store_nodes": {}, "if_nodes": {}}
    )
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    def fail_on(self, action: str, error: str = "injected failure") -> None:
        """Make every later call to *action* fail with *error*."""
        self.failures[action] = error

    def clear_failures(self) -> None:
        self.failures.clear()

    def actions(self) -> list[str]:
        """Names of the recorded calls, in order."""
        return [action for action, _ in self.calls]

    def record(self, action: str, *args: Any) -> ServiceResult | None:
        """Record a call; return a failure result if one is injected."""
        self.calls.append((action, args))
        if action in self.failures:
            log.debug("injected_failure", action=action)
            return ServiceResult.fail(self.failures[action])
        return None

    def flow(self, flow_id: str) -> dict[str, Any]:
        return self.flows.setdefault(flow_id, {"id": flow_id})

    def bundle(
        self,
        notifier: RecordingNotifier | None = None,
        invalidator: RecordingInvalidator | None = None,
    ) -> ServiceBundle:
        """Build a service bundle over this backend."""
        return ServiceBundle(
            flows=InMemoryFlowService(self),
            agents=InMemoryAgentService(self),
            data_store_nodes=InMemoryDataStoreNodeService(self),
            if_nodes=InMemoryIfNodeService(self),
            notifier=notifier,
            invalidator=invalidator,
        )


class InMemoryFlowService:
    def __init__(self, backend: InMemoryBackend) -> None:
        self._backend = backend

    async def _write(self, action: str, flow_id: str, **values: Any) -> ServiceResult:
        failed = self._backend.record(f"flows.{action}", flow_id, *values.values())
        if failed:
            return failed
        self._backend.flow(flow_id).update(copy.deepcopy(values))
        return ServiceResult.ok()

    async def update_name(self, flow_id: str, name: str) -> ServiceResult:
        return await self._write("update_name", flow_id, name=name)

    async def update_response_template(self, flow_id: str, template: str) -> ServiceResult:
        return await self._write("update_response_template", flow_id, response_template=template)

    async def update_data_store_schema(
        self, flow_id: str, schema: dict[str, Any]
    ) -> ServiceResult:
        return await self._write("update_data_store_schema", flow_id, data_store_schema=schema)

    async def update_nodes_and_edges(
        self,
        flow_id: str,
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]],
    ) -> ServiceResult:
        return await self._write("update_nodes_and_edges", flow_id, nodes=nodes, edges=edges)

    async def update_viewport(self, flow_id: str, viewport: dict[str, Any]) -> ServiceResult:
        return await self._write("update_viewport", flow_id, viewport=viewport)

    async def update_node_positions(
        self, flow_id: str, positions: list[dict[str, Any]]
    ) -> ServiceResult:
        failed = self._backend.record("flows.update_node_positions", flow_id, positions)
        if failed:
            return failed
        by_id = {p["id"]: p["position"] for p in positions}
        for node in self._backend.flow(flow_id).get("nodes", []):
            if node.get("id") in by_id:
                node["position"] = dict(by_id[node["id"]])
        return ServiceResult.ok()


class _InMemoryEntityService:
    """Create/delete/update over one entity kind of the backend."""

    kind = ""

    def __init__(self, backend: InMemoryBackend) -> None:
        self._backend = backend

    @property
    def _store(self) -> dict[str, dict[str, Any]]:
        return self._backend.entities[self.kind]

    async def create(self, flow_id: str, node_id: str, fields: dict[str, Any]) -> ServiceResult:
        """Create or replace the entity."""
        failed = self._backend.record(f"{self.kind}.create", flow_id, node_id, fields)
        if failed:
            return failed
        entity = {**copy.deepcopy(fields), "id": node_id, "flowId": flow_id}
        self._store[node_id] = entity
        return ServiceResult.ok(entity)

    async def delete(self, node_id: str) -> ServiceResult:
        failed = self._backend.record(f"{self.kind}.delete", node_id)
        if failed:
            return failed
        return ServiceResult.ok(self._store.pop(node_id, None) is not None)

    async def _update(self, action: str, node_id: str, key: str, value: Any) -> ServiceResult:
        failed = self._backend.record(f"{self.kind}.{action}", node_id, value)
        if failed:
            return failed
        entity = self._store.get(node_id)
        if entity is None:
            return ServiceResult.fail(f"{self.kind} entity '{node_id}' not found")
        entity[key] = copy.deepcopy(value)
        return ServiceResult.ok(entity)

    async def update_name(self, flow_id: str, node_id: str, name: str) -> ServiceResult:
        return await self._update("update_name", node_id, "name", name)


class InMemoryAgentService(_InMemoryEntityService):
    kind = "agents"

    async def update_prompt_messages(
        self, flow_id: str, node_id: str, messages: list[dict[str, Any]]
    ) -> ServiceResult:
        return await self._update("update_prompt_messages", node_id, "promptMessages", messages)

    async def update_schema_fields(
        self, flow_id: str, node_id: str, fields: list[dict[str, Any]]
    ) -> ServiceResult:
        return await self._update("update_schema_fields", node_id, "schemaFields", fields)


class InMemoryDataStoreNodeService(_InMemoryEntityService):
    kind = "data_store_nodes"

    async def update_color(self, flow_id: str, node_id: str, color: str) -> ServiceResult:
        return await self._update("update_color", node_id, "color", color)

    async def update_fields(
        self, flow_id: str, node_id: str, fields: list[dict[str, Any]]
    ) -> ServiceResult:
        return await self._update("update_fields", node_id, "dataStoreFields", fields)


class InMemoryIfNodeService(_InMemoryEntityService):
    kind = "if_nodes"

    async def update_conditions(
        self, flow_id: str, node_id: str, conditions: list[dict[str, Any]]
    ) -> ServiceResult:
        return await self._update("update_conditions", node_id, "conditions", conditions)

    async def update_logic_operator(
        self, flow_id: str, node_id: str, logic_operator: str
    ) -> ServiceResult:
        return await self._update("update_logic_operator", node_id, "logicOperator", logic_operator)


@dataclass
class RecordingNotifier:
    """Notifier that keeps ``(title, details)`` pairs; optionally raises."""

    notifications: list[tuple[str, str | None]] = field(default_factory=list)
    raise_error: bool = False

    def notify(self, title: str, details: str | None = None) -> None:
        if self.raise_error:
            raise RuntimeError("notification channel unavailable")
        self.notifications.append((title, details))


@dataclass
class RecordingInvalidator:
    """Cache invalidator that keeps ``(kind, entity_id)`` pairs."""

    invalidated: list[tuple[str, str]] = field(default_factory=list)

    def invalidate(self, kind: str, entity_id: str) -> None:
        self.invalidated.append((kind, entity_id))
