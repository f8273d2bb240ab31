"""Collaborator protocols consumed by the patch engine.

The engine never talks to storage directly. Processors and the lifecycle
manager call these protocols, bundled into a :class:`ServiceBundle` that
the owner of an editing session constructs and injects.

Every persistence method is async and returns a :class:`ServiceResult`;
implementations report failure through the result rather than raising.
Callers decide whether a failure is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from flowpatch.models import SERVICE_NAMES

if TYPE_CHECKING:
    from flowpatch.models import NodeType


@dataclass(frozen=True)
class ServiceResult:
    """Outcome of one persistence call.

    Attributes:
        success: Whether the call succeeded.
        value: Payload returned on success (entity dict, flag, ...).
        error: Error text on failure.
    """

    success: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, value: Any = None) -> ServiceResult:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str) -> ServiceResult:
        return cls(success=False, error=error)


@runtime_checkable
class FlowService(Protocol):
    """Flow-level writes, one method per persisted sub-field."""

    async def update_name(self, flow_id: str, name: str) -> ServiceResult:
        """Persist the flow name."""
        ...

    async def update_response_template(self, flow_id: str, template: str) -> ServiceResult:
        """Persist the response template."""
        ...

    async def update_data_store_schema(
        self, flow_id: str, schema: dict[str, Any]
    ) -> ServiceResult:
        """Persist the whole data-store schema (``{"fields": [...]}``)."""
        ...

    async def update_nodes_and_edges(
        self,
        flow_id: str,
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]],
    ) -> ServiceResult:
        """Persist the full node and edge lists."""
        ...

    async def update_viewport(self, flow_id: str, viewport: dict[str, Any]) -> ServiceResult:
        """Persist the editor camera (``{"x", "y", "zoom"}``)."""
        ...

    async def update_node_positions(
        self, flow_id: str, positions: list[dict[str, Any]]
    ) -> ServiceResult:
        """Persist ``[{"id", "position"}]`` without touching node content."""
        ...


@runtime_checkable
class EntityService(Protocol):
    """Operations shared by every node-backing entity service."""

    async def create(self, flow_id: str, node_id: str, fields: dict[str, Any]) -> ServiceResult:
        """Create the entity under the given (predetermined) id."""
        ...

    async def delete(self, node_id: str) -> ServiceResult:
        """Delete the entity. Deleting a missing entity succeeds."""
        ...

    async def update_name(self, flow_id: str, node_id: str, name: str) -> ServiceResult:
        """Persist the entity name."""
        ...


@runtime_checkable
class AgentService(EntityService, Protocol):
    async def update_prompt_messages(
        self, flow_id: str, node_id: str, messages: list[dict[str, Any]]
    ) -> ServiceResult: ...

    async def update_schema_fields(
        self, flow_id: str, node_id: str, fields: list[dict[str, Any]]
    ) -> ServiceResult: ...


@runtime_checkable
class DataStoreNodeService(EntityService, Protocol):
    async def update_color(self, flow_id: str, node_id: str, color: str) -> ServiceResult: ...

    async def update_fields(
        self, flow_id: str, node_id: str, fields: list[dict[str, Any]]
    ) -> ServiceResult: ...


@runtime_checkable
class IfNodeService(EntityService, Protocol):
    async def update_conditions(
        self, flow_id: str, node_id: str, conditions: list[dict[str, Any]]
    ) -> ServiceResult: ...

    async def update_logic_operator(
        self, flow_id: str, node_id: str, logic_operator: str
    ) -> ServiceResult: ...


@runtime_checkable
class Notifier(Protocol):
    """User-facing notification sink (toasts)."""

    def notify(self, title: str, details: str | None = None) -> None:
        """Show a notification. May raise; callers guard it."""
        ...


@runtime_checkable
class CacheInvalidator(Protocol):
    """Invalidates cached reads after a persisted mutation."""

    def invalidate(self, kind: str, entity_id: str) -> None:
        """Drop cached state for one entity (``kind`` is the entity family)."""
        ...


@dataclass
class ServiceBundle:
    """The injected set of collaborators for one editing session."""

    flows: FlowService
    agents: AgentService
    data_store_nodes: DataStoreNodeService
    if_nodes: IfNodeService
    notifier: Notifier | None = None
    invalidator: CacheInvalidator | None = None

    def entity_service(self, node_type: NodeType | str) -> EntityService | None:
        """Return the service backing *node_type*, or None for start/end nodes."""
        name = SERVICE_NAMES.get(str(node_type))
        return getattr(self, name) if name else None
