"""Color assignment for process nodes, scoped to one flow resource."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from flowpatch.config import DEFAULT_COLOR_PALETTE

if TYPE_CHECKING:
    from collections.abc import Sequence

_ENTITY_MAPS = ("agents", "dataStoreNodes", "ifNodes")


def used_colors(resource: dict[str, Any]) -> Counter[str]:
    """Count colors held by the resource's agents, data-store nodes and if-nodes."""
    counts: Counter[str] = Counter()
    for key in _ENTITY_MAPS:
        entities = resource.get(key)
        if not isinstance(entities, dict):
            continue
        for entity in entities.values():
            if isinstance(entity, dict) and isinstance(entity.get("color"), str):
                counts[entity["color"]] += 1
    return counts


def assign_color(resource: dict[str, Any], palette: Sequence[str] | None = None) -> str:
    """Pick the color for a new process node.

    The first palette color not used in *resource* wins. When every color
    is taken, the least-used one is returned, earliest in the palette on ties.
    """
    colors = list(palette or DEFAULT_COLOR_PALETTE)
    counts = used_colors(resource)
    for color in colors:
        if counts[color] == 0:
            return color
    return min(colors, key=lambda c: counts[c])
