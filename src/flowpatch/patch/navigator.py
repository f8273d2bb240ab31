"""Navigation and in-place array editing over nested resource dicts.

The navigator walks a parsed path, creating missing intermediate
containers (vivification) so deep paths can be written without existing
structure. The list helpers implement the fixed verb semantics shared by
every entity family:

- ``set`` at an index replaces the element (padding first)
- ``put`` at an index inserts and shifts the tail right
- ``remove`` at an index deletes one element and shifts the tail left
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from flowpatch.patch.grammar import ParsedPath, PathSegment, parse_path

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

# Keys whose values are always collections.
COLLECTION_KEYS = frozenset(
    {"entries", "promptMessages", "messages", "blocks", "scenarios", "fields"}
)

Builder = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass
class NavigationResult:
    """Where a navigation ended.

    Attributes:
        target: Value at the end of the path.
        parent: Container holding *target*.
        last: Final key or index used to reach *target* from *parent*.
    """

    target: Any
    parent: Any
    last: str | int | None


def container_for(key: str, next_is_index: bool) -> dict[str, Any] | list[Any]:
    """Choose an empty container for a missing key.

    Known collection keys and keys followed by an index become lists;
    everything else becomes a dict.
    """
    if key in COLLECTION_KEYS or next_is_index:
        return []
    return {}


def navigate_to_path(
    root: dict[str, Any],
    path: str | ParsedPath | Sequence[PathSegment],
    *,
    create_missing: bool = True,
    builders: Mapping[str, Builder] | None = None,
) -> NavigationResult:
    """Walk *root* along *path*, vivifying missing containers.

    A list reached through a key with an entry in *builders* is padded with
    that builder's placeholders, and any element of it the walk lands on
    that is not an object is rebuilt. Other lists are padded with empty
    containers. A collection key holding something other than a list is
    reset to an empty list.

    Args:
        root: Object to walk; mutated when containers are created.
        path: Path string or already parsed segments.
        create_missing: Raise instead of vivifying.
        builders: Default-builders keyed by the name of the list they fill.

    Raises:
        TypeError: If an index segment meets a non-list, or a key segment
            meets a non-dict.
        KeyError: If *create_missing* is False and a key is absent.
        IndexError: If *create_missing* is False and an index is past the end.
    """
    if isinstance(path, str):
        segments: Sequence[PathSegment] = parse_path(path).segments
    elif isinstance(path, ParsedPath):
        segments = path.segments
    else:
        segments = path
    builders = builders or {}

    current: Any = root
    parent: Any = None
    last: str | int | None = None
    list_key: str | None = None

    for i, segment in enumerate(segments):
        next_is_index = i + 1 < len(segments) and segments[i + 1].is_index
        parent = current
        last = segment.value

        if segment.is_index:
            if not isinstance(current, list):
                raise TypeError(
                    f"Expected list at index {segment.value}, got {type(current).__name__}"
                )
            index = int(segment.value)
            if index >= len(current) and not create_missing:
                raise IndexError(f"Index {index} out of range")
            builder = builders.get(list_key) if list_key else None
            if builder is not None:
                current = element_at(current, index, builder)
            else:
                while len(current) <= index:
                    current.append([] if next_is_index else {})
                current = current[index]
            list_key = None
        else:
            if not isinstance(current, dict):
                raise TypeError(
                    f"Expected object at key {segment.value!r}, got {type(current).__name__}"
                )
            key = str(segment.value)
            value = current.get(key)
            if value is None:
                if not create_missing:
                    raise KeyError(key)
                current[key] = container_for(key, next_is_index)
            elif create_missing and key in COLLECTION_KEYS and not isinstance(value, list):
                current[key] = []
            current = current[key]
            list_key = key

    return NavigationResult(target=current, parent=parent, last=last)


def ensure_dict(container: dict[str, Any], key: str) -> dict[str, Any]:
    """Return ``container[key]``, replacing it with ``{}`` if absent or not a dict."""
    value = container.get(key)
    if not isinstance(value, dict):
        value = {}
        container[key] = value
    return value


def ensure_list(container: dict[str, Any], key: str) -> list[Any]:
    """Return ``container[key]``, replacing it with ``[]`` if absent or not a list."""
    value = container.get(key)
    if not isinstance(value, list):
        value = []
        container[key] = value
    return value


def pad_list(items: list[Any], length: int, builder: Builder) -> None:
    """Append default-built placeholders until ``len(items) >= length``.

    Existing ``None`` holes below *length* are filled as well.
    """
    for i, item in enumerate(items[:length]):
        if item is None:
            items[i] = builder({})
    while len(items) < length:
        items.append(builder({}))


def set_at(items: list[Any], index: int, value: Any, builder: Builder) -> dict[str, Any]:
    """Replace the element at *index*, padding first.

    The new element is ``builder(value)``. When *value* has no ``id`` the
    replaced element's id is carried over so the element keeps a stable
    identity.

    Returns:
        The element now at *index*.
    """
    pad_list(items, index + 1, builder)
    payload = dict(value) if isinstance(value, dict) else {}
    previous = items[index]
    if not payload.get("id") and isinstance(previous, dict) and previous.get("id"):
        payload["id"] = previous["id"]
    element = builder(payload)
    items[index] = element
    return element


def insert_at(items: list[Any], index: int, value: Any, builder: Builder) -> dict[str, Any]:
    """Insert ``builder(value)`` at *index*, shifting later elements right.

    Pads only up to *index*, so for ``index <= len(items)`` the list grows
    by exactly one.

    Returns:
        The inserted element.
    """
    pad_list(items, index, builder)
    element = builder(dict(value) if isinstance(value, dict) else {})
    items.insert(index, element)
    return element


def append(items: list[Any], value: Any, builder: Builder) -> dict[str, Any]:
    """Append ``builder(value)`` to *items*."""
    element = builder(dict(value) if isinstance(value, dict) else {})
    items.append(element)
    return element


def remove_at(items: list[Any], index: int) -> Any | None:
    """Remove the element at *index*, shifting later elements left.

    Returns:
        The removed element, or None when *index* is out of range.
    """
    if index < len(items):
        return items.pop(index)
    return None


def element_at(items: list[Any], index: int, builder: Builder) -> dict[str, Any]:
    """Return the element at *index*, padding and repairing it if needed."""
    pad_list(items, index + 1, builder)
    element = items[index]
    if not isinstance(element, dict):
        element = builder({})
        items[index] = element
    return element
