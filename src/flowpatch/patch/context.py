"""Input and output contracts of the patch engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, get_args

Verb = Literal["set", "put", "remove"]
VERBS: tuple[str, ...] = get_args(Verb)


@dataclass
class Operation:
    """One ``{path, operation, value}`` instruction against a resource."""

    path: str
    operation: Verb
    value: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Operation:
        """Build from the wire form (``{"path", "operation", "value"}``).

        Raises:
            ValueError: If ``path`` is missing or ``operation`` is not a known verb.
        """
        path = data.get("path")
        verb = data.get("operation")
        if not isinstance(path, str) or not path:
            raise ValueError("operation requires a non-empty 'path'")
        if verb not in VERBS:
            raise ValueError(f"unknown operation {verb!r}; expected one of {', '.join(VERBS)}")
        return cls(path=path, operation=verb, value=data.get("value"))


@dataclass
class OperationContext:
    """Everything a processor needs to apply one operation.

    Attributes:
        path: Path string the operation addresses.
        operation: Verb to apply.
        value: Payload for ``set``/``put``.
        resource: Resource dict, mutated in place.
        flow_id: Stable flow identifier supplied by the caller, if any.
        preview: When True, node/edge creation is validated only and
            deferred to the approval phase. Only :class:`EditSession`
            previews; direct engine calls apply.
    """

    path: str
    operation: Verb
    resource: dict[str, Any]
    value: Any = None
    flow_id: str | None = None
    preview: bool = False

    def resolve_flow_id(self) -> str | None:
        """Resolve the stable flow id: explicit, then ``resource.id``, then ``resource.flowId``."""
        return self.flow_id or self.resource.get("id") or self.resource.get("flowId") or None


@dataclass
class OperationResult:
    """Outcome of one operation.

    On success ``result`` holds the mutated resource. On failure ``error``
    holds a message, ``code`` a stable error code, and ``context`` the
    ``{operation, path, processor}`` triple identifying where it failed.
    """

    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    code: str | None = None
    context: dict[str, str] = field(default_factory=dict)

    @classmethod
    def ok(cls, resource: dict[str, Any]) -> OperationResult:
        return cls(success=True, result=resource)

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        code: str | None = None,
        context: dict[str, str] | None = None,
    ) -> OperationResult:
        return cls(success=False, error=error, code=code, context=context or {})

    def to_dict(self) -> dict[str, Any]:
        """Render the wire form of the result."""
        if self.success:
            return {"success": True, "result": self.result}
        out: dict[str, Any] = {"success": False, "error": self.error, "context": self.context}
        if self.code:
            out["code"] = self.code
        return out
