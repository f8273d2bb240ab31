"""Ordered registry of path processors.

Each processor is a tagged matcher ``(pattern, specificity, handler)``.
Lookup walks processors from most to least specific and returns the first
whose pattern matches, so a generic pattern such as ``agents.<id>.<field>``
never swallows a path meant for ``agents.<id>.promptMessages``.

Specificity is derived from the pattern itself: path depth first, then the
number of literal (non-captured) segments. Processors with equal
specificity keep their registration order.

Usage::

    registry = ProcessorRegistry()
    registry.register("agent_field", AGENT_FIELD, handle_agent_field, family="agents")
    found = registry.find("agents.a1.name")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flowpatch.patch.grammar import PathMatch, match_path

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from flowpatch.patch.context import OperationContext, OperationResult

    Handler = Callable[[OperationContext, PathMatch, Any], Awaitable[OperationResult]]

_LITERAL_DOT = re.compile(r"\\\.")
_INDEX_GROUP = re.compile(r"\\\[\(")


def pattern_specificity(pattern: re.Pattern[str]) -> tuple[int, int]:
    """Return ``(depth, literal_segments)`` for an anchored path pattern.

    Depth counts key and index segments; literal segments are those not
    captured by a group.
    """
    source = pattern.pattern
    depth = 1 + len(_LITERAL_DOT.findall(source)) + len(_INDEX_GROUP.findall(source))
    return depth, depth - pattern.groups


@dataclass(frozen=True)
class PathProcessor:
    """A registered processor.

    Attributes:
        name: Unique processor name (used in error contexts).
        pattern: Anchored regex matched against the full path.
        handler: Async callable ``(context, match, env) -> OperationResult``.
        family: Entity family the processor belongs to.
        description: One-line description for listings.
        failure_message: User-facing title when the operation fails critically.
        order: Registration sequence number.
    """

    name: str
    pattern: re.Pattern[str]
    handler: Handler
    family: str
    description: str = ""
    failure_message: str = ""
    order: int = 0

    @property
    def specificity(self) -> tuple[int, int]:
        return pattern_specificity(self.pattern)

    @property
    def priority(self) -> int:
        """Integer sort key: depth dominates, literal segments break ties."""
        depth, literal = self.specificity
        return depth * 100 + literal


@dataclass
class ProcessorMatch:
    """A processor together with the match that selected it."""

    processor: PathProcessor
    match: PathMatch


@dataclass
class ProcessorRegistry:
    """Explicit, constructed registry of path processors."""

    _processors: dict[str, PathProcessor] = field(default_factory=dict)
    _ordered: list[PathProcessor] | None = None

    # -- Registration ----------------------------------------------------------

    def register(
        self,
        name: str,
        pattern: re.Pattern[str],
        handler: Handler,
        *,
        family: str,
        description: str = "",
        failure_message: str = "",
    ) -> PathProcessor:
        """Register a processor.

        Raises:
            ValueError: If *name* is already registered.
        """
        if name in self._processors:
            raise ValueError(f"Duplicate processor name {name!r}")
        processor = PathProcessor(
            name=name,
            pattern=pattern,
            handler=handler,
            family=family,
            description=description,
            failure_message=failure_message,
            order=len(self._processors),
        )
        self._processors[name] = processor
        self._ordered = None
        return processor

    # -- Lookup ----------------------------------------------------------------

    @property
    def ordered(self) -> list[PathProcessor]:
        """Processors in evaluation order (most specific first)."""
        if self._ordered is None:
            self._ordered = sorted(
                self._processors.values(),
                key=lambda p: (-p.priority, p.order),
            )
        return self._ordered

    def find(self, path: str) -> ProcessorMatch | None:
        """Return the first processor whose pattern matches *path*."""
        for processor in self.ordered:
            match = match_path(path, processor.pattern)
            if match.matches:
                return ProcessorMatch(processor=processor, match=match)
        return None

    def candidates(self, path: str) -> list[PathProcessor]:
        """All processors matching *path*, in evaluation order."""
        return [p for p in self.ordered if p.pattern.match(path)]

    def get(self, name: str) -> PathProcessor | None:
        return self._processors.get(name)

    def __len__(self) -> int:
        return len(self._processors)

    def __contains__(self, name: str) -> bool:
        return name in self._processors

    # -- Validation ------------------------------------------------------------

    def validate(self, samples: Iterable[str]) -> list[str]:
        """Check evaluation order against a set of sample paths.

        Reports samples no processor matches, samples where a less specific
        processor is tried before a more specific one (shadowing), and samples
        two processors of the same family match with equal specificity.

        Returns:
            List of error strings. Empty means valid.
        """
        errors: list[str] = []
        for sample in samples:
            matching = self.candidates(sample)
            if not matching:
                errors.append(f"No processor matches sample {sample!r}")
                continue
            for earlier, later in zip(matching, matching[1:], strict=False):
                if earlier.specificity < later.specificity:
                    errors.append(
                        f"Sample {sample!r}: {earlier.name!r} shadows more specific {later.name!r}"
                    )
            seen: dict[tuple[str, tuple[int, int]], str] = {}
            for p in matching:
                key = (p.family, p.specificity)
                if key in seen:
                    errors.append(
                        f"Sample {sample!r} is ambiguous between {seen[key]!r} and {p.name!r}"
                    )
                else:
                    seen[key] = p.name
        return errors

    def table(self) -> list[tuple[int, int, str, str, str]]:
        """Rows of ``(position, priority, name, family, pattern)`` in evaluation order."""
        return [
            (i, p.priority, p.name, p.family, p.pattern.pattern)
            for i, p in enumerate(self.ordered)
        ]
