"""Error taxonomy and the standardized error handler.

Processors raise typed errors; the :class:`ErrorHandler` turns them into a
uniform failed :class:`~flowpatch.patch.context.OperationResult` and decides
how loudly to report them:

- recoverable problems (unsupported verb, bad input) log at ``warning``
- critical problems (persistence failures, rollbacks) log at ``error`` and
  raise a user-facing notification
- domain-parse problems that were repaired locally log at ``debug`` only
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rich.console import Console

from flowpatch.observability.logging import get_logger
from flowpatch.patch.context import OperationResult

if TYPE_CHECKING:
    from flowpatch.services.base import Notifier

log = get_logger(__name__)

_fallback_console = Console(stderr=True)


class FlowPatchError(Exception):
    """Base class for all engine errors.

    Attributes:
        code: Stable machine-readable error code copied into failure results.
    """

    code: str = "error"


class PreconditionError(FlowPatchError):
    """A required identifier (flow id, predetermined node id) is missing.

    Always fatal to the single operation, never downgraded to a no-op.
    """

    code = "precondition"


class InvalidPathError(FlowPatchError):
    """A path string could not be parsed into segments."""

    code = "invalid_path"


class UnsupportedOperationError(FlowPatchError):
    """The verb is not valid for the addressed path shape."""

    code = "unsupported_operation"


class NoProcessorError(FlowPatchError):
    """No registered pattern matches the path."""

    code = "no_processor"


@dataclass
class PersistenceError(FlowPatchError):
    """A persistence-layer call reported failure.

    Attributes:
        action: Service call that failed (e.g. ``"data_store.update_name"``).
        detail: Error text returned by the service.
    """

    action: str
    detail: str = ""

    code = "persistence"

    def __post_init__(self) -> None:
        msg = f"{self.action} failed"
        if self.detail:
            msg += f": {self.detail}"
        super().__init__(msg)


@dataclass
class RollbackError(FlowPatchError):
    """A compensating delete failed after a creation error.

    Logged and recorded in the intent log; never returned in place of the
    error that triggered the rollback.
    """

    node_id: str
    detail: str = ""

    code = "rollback"

    def __post_init__(self) -> None:
        super().__init__(f"Rollback of '{self.node_id}' failed: {self.detail}")


@dataclass
class NodeRemovalForbiddenError(FlowPatchError):
    """Raised when removing a structural (start/end) node."""

    node_id: str
    node_type: str

    code = "forbidden"

    def __post_init__(self) -> None:
        super().__init__(f"Cannot remove {self.node_type} node '{self.node_id}'")


@dataclass
class EdgeEndpointError(PreconditionError):
    """Raised when an edge references a node that is not in the resource.

    Attributes:
        source: Source node id.
        target: Target node id.
        missing: Which endpoint is missing ("source", "target", or "both").
    """

    source: str
    target: str
    missing: str

    def __post_init__(self) -> None:
        if self.missing == "both":
            msg = f"Edge endpoints not found: '{self.source}' and '{self.target}'"
        elif self.missing == "source":
            msg = f"Edge source not found: '{self.source}'"
        else:
            msg = f"Edge target not found: '{self.target}'"
        super().__init__(msg)


@dataclass
class ErrorContext:
    """Where an error happened, copied into the failure result."""

    operation: str
    path: str
    processor: str
    input_data: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_result_context(self) -> dict[str, str]:
        return {"operation": self.operation, "path": self.path, "processor": self.processor}


class ErrorHandler:
    """Standardizes processor failures into failure results.

    Args:
        notifier: Optional user-facing notification sink.
        notify_on_critical: When False, critical errors are logged but no
            notification is sent.
    """

    def __init__(
        self, notifier: Notifier | None = None, *, notify_on_critical: bool = True
    ) -> None:
        self._notifier = notifier
        self._notify_on_critical = notify_on_critical

    def handle(self, error: Exception, context: ErrorContext) -> OperationResult:
        """Report a recoverable error and build its failure result."""
        log.warning(
            "operation_failed",
            error=str(error),
            error_type=type(error).__name__,
            **context.as_result_context(),
        )
        return self._failure(error, context)

    def handle_critical(
        self,
        error: Exception,
        context: ErrorContext,
        user_message: str,
    ) -> OperationResult:
        """Report a critical error, notify the user, and build its failure result.

        Args:
            error: The error that aborted the operation.
            context: Where it happened.
            user_message: Human-readable toast title for this operation.
        """
        log.error(
            "operation_failed_critical",
            error=str(error),
            error_type=type(error).__name__,
            input_data=context.input_data,
            **context.as_result_context(),
        )
        if self._notify_on_critical:
            self.notify(user_message, str(error))
        return self._failure(error, context)

    def handle_debug(self, error: Exception | str, context: ErrorContext) -> None:
        """Record an error that was repaired locally. Produces no result."""
        log.debug(
            "operation_recovered",
            error=str(error),
            input_data=context.input_data,
            **context.extra,
            **context.as_result_context(),
        )

    def notify(self, title: str, details: str | None = None) -> None:
        """Fire-and-forget notification; failures fall back to the console."""
        if self._notifier is None:
            return
        try:
            self._notifier.notify(title, details)
        except Exception as e:  # noqa: BLE001 - notification must never break an operation
            log.warning("notification_failed", title=title, error=str(e))
            _fallback_console.print(f"[bold red]{title}[/bold red] {details or ''}")

    @staticmethod
    def _failure(error: Exception, context: ErrorContext) -> OperationResult:
        return OperationResult.failure(
            str(error),
            code=getattr(error, "code", None),
            context=context.as_result_context(),
        )
