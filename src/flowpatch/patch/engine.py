"""Patch engine: dispatch operations to processors and standardize failures.

The engine owns the collaborators (registry, lifecycle manager, error
handler) that used to live in ambient globals; everything is constructed
and injected. A typical session::

    engine = PatchEngine(services=backend.bundle())
    result = await engine.apply_operation(resource, {"path": "flow.name",
                                                     "operation": "set",
                                                     "value": "Demo"})

Processors mutate the resource in place and may suspend on persistence
calls. Two operations against the same resource must not interleave;
:class:`EditSession` serializes them with a lock.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flowpatch.config import FlowPatchConfig
from flowpatch.lifecycle.intents import IntentLog
from flowpatch.lifecycle.manager import NodeLifecycleManager
from flowpatch.observability.logging import get_logger
from flowpatch.patch.context import VERBS, Operation, OperationContext, OperationResult
from flowpatch.patch.errors import (
    ErrorContext,
    ErrorHandler,
    FlowPatchError,
    NoProcessorError,
    PersistenceError,
    UnsupportedOperationError,
)
from flowpatch.patch.grammar import parse_path
from flowpatch.patch.processors import ProcessorEnv, build_default_registry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from flowpatch.lifecycle.intents import CreationIntent
    from flowpatch.patch.registry import ProcessorRegistry
    from flowpatch.services.base import Notifier, ServiceBundle

log = get_logger(__name__)

# Families whose put operations are only validated during preview.
_DEFERRED_FAMILIES = frozenset({"graph"})


class PatchEngine:
    """Applies ``{path, operation, value}`` operations to a resource.

    Args:
        services: Persistence collaborators. None keeps every change in memory.
        config: Session configuration; defaults are used when omitted.
        registry: Processor registry; the built-in one when omitted.
        lifecycle: Node lifecycle manager; built from *services* and
            *config* when omitted.
        notifier: User-facing notification sink. Falls back to
            ``services.notifier``.
    """

    def __init__(
        self,
        services: ServiceBundle | None = None,
        *,
        config: FlowPatchConfig | None = None,
        registry: ProcessorRegistry | None = None,
        lifecycle: NodeLifecycleManager | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = config or FlowPatchConfig()
        self.services = services
        self.registry = registry or build_default_registry()
        if lifecycle is None:
            intent_log = (
                IntentLog.load(self.config.intent_log_path)
                if self.config.intent_log_path
                else IntentLog()
            )
            lifecycle = NodeLifecycleManager(
                services, palette=self.config.color_palette, intent_log=intent_log
            )
        self.lifecycle = lifecycle
        if notifier is None and services is not None:
            notifier = services.notifier
        self.errors = ErrorHandler(notifier, notify_on_critical=self.config.notify_on_critical)
        self.env = ProcessorEnv(
            lifecycle=self.lifecycle,
            errors=self.errors,
            services=services,
            config=self.config,
        )

    async def apply(self, ctx: OperationContext) -> OperationResult:
        """Apply one operation described by *ctx*.

        Never raises for operation-level problems; every failure comes back
        as a failed :class:`OperationResult`.
        """
        if ctx.operation not in VERBS:
            error = UnsupportedOperationError(f"Unknown operation {ctx.operation!r}")
            return self.errors.handle(error, ErrorContext(ctx.operation, ctx.path, "engine"))

        try:
            parse_path(ctx.path)
        except FlowPatchError as e:
            return self.errors.handle(e, ErrorContext(ctx.operation, ctx.path, "grammar"))

        found = self.registry.find(ctx.path)
        if found is None:
            error = NoProcessorError(f"No processor found for path: {ctx.path}")
            return self.errors.handle(error, ErrorContext(ctx.operation, ctx.path, "registry"))

        processor = found.processor
        error_context = ErrorContext(
            ctx.operation, ctx.path, processor.name, input_data=ctx.value
        )
        log.debug(
            "operation_dispatched",
            path=ctx.path,
            operation=ctx.operation,
            processor=processor.name,
            preview=ctx.preview,
        )
        try:
            return await processor.handler(ctx, found.match, self.env)
        except PersistenceError as e:
            message = (
                processor.failure_message or f"Failed to apply {ctx.operation} to {ctx.path}"
            )
            return self.errors.handle_critical(e, error_context, message)
        except FlowPatchError as e:
            return self.errors.handle(e, error_context)
        except (TypeError, ValueError, KeyError, IndexError) as e:
            # Malformed values rejected by builders or models
            return self.errors.handle(e, error_context)

    async def apply_operation(
        self,
        resource: dict[str, Any],
        operation: Operation | dict[str, Any],
        *,
        flow_id: str | None = None,
        preview: bool = False,
    ) -> OperationResult:
        """Apply one wire-form or :class:`Operation` instruction to *resource*.

        Args:
            flow_id: Stable flow id; resolved from the resource when None.
            preview: Only validate node and edge creation. Set by
                :class:`EditSession`; direct callers get the operation applied.
        """
        if not isinstance(operation, Operation):
            if not isinstance(operation, dict):
                error = ValueError(f"operation must be an object, got {type(operation).__name__}")
                return self.errors.handle(error, ErrorContext("", "", "engine"))
            try:
                operation = Operation.from_dict(operation)
            except ValueError as e:
                path = str(operation.get("path", ""))
                verb = str(operation.get("operation", ""))
                return self.errors.handle(e, ErrorContext(verb, path, "engine"))
        ctx = OperationContext(
            path=operation.path,
            operation=operation.operation,
            resource=resource,
            value=operation.value,
            flow_id=flow_id,
            preview=preview,
        )
        return await self.apply(ctx)

    async def apply_batch(
        self,
        resource: dict[str, Any],
        operations: Iterable[Operation | dict[str, Any]],
        *,
        flow_id: str | None = None,
        preview: bool = False,
        stop_on_error: bool = False,
    ) -> list[OperationResult]:
        """Apply operations one after another against the same resource.

        Operations run sequentially; a batch never interleaves with itself.

        Args:
            stop_on_error: Stop at the first failed operation.

        Returns:
            One result per applied operation.
        """
        results: list[OperationResult] = []
        for operation in operations:
            result = await self.apply_operation(
                resource, operation, flow_id=flow_id, preview=preview
            )
            results.append(result)
            if stop_on_error and not result.success:
                break
        failed = sum(1 for r in results if not r.success)
        log.info("batch_applied", operations=len(results), failed=failed)
        return results

    async def recover(self) -> list[CreationIntent]:
        """Compensate creations a previous process left unresolved.

        Call once at startup, before any new operation.
        """
        if self.services is None:
            return []
        return await self.lifecycle.intent_log.reconcile_orphans(self.services)

    def is_deferred(self, operation: Operation) -> bool:
        """Whether *operation* is only validated during preview."""
        if operation.operation != "put" or not self.config.preview_node_creation:
            return False
        found = self.registry.find(operation.path)
        return found is not None and found.processor.family in _DEFERRED_FAMILIES


@dataclass
class EditSession:
    """One editor's session over one resource.

    Serializes operations with an :class:`asyncio.Lock` and keeps node and
    edge creations seen during preview until :meth:`approve` or
    :meth:`reject`.

    Attributes:
        engine: Engine shared across sessions.
        resource: Resource being edited, mutated in place.
        flow_id: Stable flow id; resolved from the resource when None.
        pending: Previewed operations waiting for approval.
    """

    engine: PatchEngine
    resource: dict[str, Any]
    flow_id: str | None = None
    pending: list[Operation] = field(default_factory=list)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def apply(self, operation: Operation | dict[str, Any]) -> OperationResult:
        """Apply one operation in the preview phase."""
        if not isinstance(operation, Operation):
            try:
                operation = Operation.from_dict(operation)
            except (AttributeError, ValueError):
                return await self.engine.apply_operation(self.resource, operation)
        async with self._lock:
            result = await self.engine.apply_operation(
                self.resource, operation, flow_id=self.flow_id, preview=True
            )
        if result.success and self.engine.is_deferred(operation):
            self.pending.append(operation)
            log.debug("operation_deferred", path=operation.path, pending=len(self.pending))
        return result

    async def apply_all(
        self, operations: Iterable[Operation | dict[str, Any]]
    ) -> list[OperationResult]:
        return [await self.apply(op) for op in operations]

    async def approve(self) -> list[OperationResult]:
        """Run the deferred creations for real, in the order they were previewed.

        Operations that fail are dropped from the pending list as well; the
        caller sees them in the returned results.
        """
        operations, self.pending = self.pending, []
        results: list[OperationResult] = []
        async with self._lock:
            for operation in operations:
                results.append(
                    await self.engine.apply_operation(
                        self.resource, operation, flow_id=self.flow_id, preview=False
                    )
                )
        log.info(
            "pending_operations_approved",
            operations=len(results),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    def reject(self) -> int:
        """Drop every deferred creation. Returns how many were dropped."""
        dropped = len(self.pending)
        self.pending.clear()
        log.info("pending_operations_rejected", operations=dropped)
        return dropped
