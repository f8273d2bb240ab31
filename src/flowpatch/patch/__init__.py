"""Structured patch engine.

Import :class:`~flowpatch.patch.engine.PatchEngine` from
``flowpatch.patch.engine``; this package only re-exports the contracts so
the lifecycle manager can depend on them without importing processors.
"""

from flowpatch.patch.context import Operation, OperationContext, OperationResult
from flowpatch.patch.errors import (
    EdgeEndpointError,
    ErrorContext,
    ErrorHandler,
    FlowPatchError,
    InvalidPathError,
    NodeRemovalForbiddenError,
    NoProcessorError,
    PersistenceError,
    PreconditionError,
    RollbackError,
    UnsupportedOperationError,
)
from flowpatch.patch.grammar import PathMatch, match_path, parse_path

__all__ = [
    "EdgeEndpointError",
    "ErrorContext",
    "ErrorHandler",
    "FlowPatchError",
    "InvalidPathError",
    "NoProcessorError",
    "NodeRemovalForbiddenError",
    "Operation",
    "OperationContext",
    "OperationResult",
    "PathMatch",
    "PersistenceError",
    "PreconditionError",
    "RollbackError",
    "UnsupportedOperationError",
    "match_path",
    "parse_path",
]
