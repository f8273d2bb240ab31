"""Path grammar and pattern matching.

A path addresses a location inside a flow resource using dotted object keys
and bracketed integer indices::

    agents.<id>.promptMessages[0].messages[1].blocks[2]

``parse_path`` splits a path into ordered key/index segments and
``match_path`` tests a path against one anchored pattern, returning the
positional capture groups plus every key and index found in the path.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from flowpatch.patch.errors import InvalidPathError

_KEY = r"[^.\[\]]+"
_INDEX = r"\[\d+\]"
_VALID_PATH_RE = re.compile(rf"^{_KEY}(?:{_INDEX})*(?:\.{_KEY}(?:{_INDEX})*)*$")
_TOKEN_RE = re.compile(rf"({_KEY})|\[(\d+)\]")
_INDEX_RE = re.compile(r"\[(\d+)\]")


@dataclass(frozen=True)
class PathSegment:
    """One step of a parsed path."""

    kind: Literal["key", "index"]
    value: str | int

    @property
    def is_index(self) -> bool:
        return self.kind == "index"


@dataclass(frozen=True)
class ParsedPath:
    """A path split into segments, with its keys and indices listed separately."""

    raw: str
    segments: tuple[PathSegment, ...]

    @property
    def keys(self) -> list[str]:
        return [str(s.value) for s in self.segments if not s.is_index]

    @property
    def indices(self) -> list[int]:
        return [int(s.value) for s in self.segments if s.is_index]


@dataclass
class PathMatch:
    """Result of matching a path against one pattern.

    Attributes:
        matches: Whether the pattern matched.
        groups: Positional captures as ``group1``, ``group2``, ...
        indices: Every bracketed index in the path, in order.
        keys: Every non-numeric key in the path, in order.
    """

    matches: bool
    groups: dict[str, str] = field(default_factory=dict)
    indices: list[int] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)

    def group(self, n: int) -> str:
        """Return capture group *n* (1-based).

        Raises:
            KeyError: If the group was not captured.
        """
        return self.groups[f"group{n}"]

    def index_group(self, n: int) -> int:
        """Return capture group *n* as an integer index."""
        return int(self.group(n))


def parse_path(path: str) -> ParsedPath:
    """Parse a path string into segments.

    Digit-only dotted keys (``a.0``) are treated as indices, matching the
    bracket form (``a[0]``).

    Raises:
        InvalidPathError: If the path is empty or malformed (empty keys,
            unbalanced brackets, non-integer indices).
    """
    if not path or not _VALID_PATH_RE.match(path):
        raise InvalidPathError(f"Malformed path: {path!r}")

    segments: list[PathSegment] = []
    for key, index in _TOKEN_RE.findall(path):
        if index:
            segments.append(PathSegment("index", int(index)))
        elif key.isdigit():
            segments.append(PathSegment("index", int(key)))
        else:
            segments.append(PathSegment("key", key))
    return ParsedPath(raw=path, segments=tuple(segments))


def match_path(path: str, pattern: re.Pattern[str]) -> PathMatch:
    """Match *path* against an anchored *pattern*.

    Returns a non-matching :class:`PathMatch` (all collections empty) when
    the pattern does not match.
    """
    m = pattern.match(path)
    if m is None:
        return PathMatch(matches=False)

    indices = [int(i) for i in _INDEX_RE.findall(path)]
    keys = [k for k, _ in _TOKEN_RE.findall(path) if k and not k.isdigit()]
    groups = {
        f"group{i}": value for i, value in enumerate(m.groups(), start=1) if value is not None
    }
    return PathMatch(matches=True, groups=groups, indices=indices, keys=keys)
