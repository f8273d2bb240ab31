"""Structural hashing of node/edge content.

The hash covers what a node *is*, not where it is drawn: ``position`` and
the editor's transient render keys are stripped before hashing, so a drag
or a selection change never looks like a content change.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

# Keys the canvas sets on nodes that carry no content.
LAYOUT_KEYS = frozenset({"position", "selected", "dragging", "measured", "width", "height"})


def strip_layout(node: dict[str, Any]) -> dict[str, Any]:
    """Copy *node* without layout and render-state keys."""
    return {k: v for k, v in node.items() if k not in LAYOUT_KEYS}


def structural_hash(nodes: list[dict[str, Any]], edges: list[dict[str, Any]]) -> str:
    """SHA-256 of the canonical JSON of nodes (layout stripped) and edges.

    Key order inside objects does not matter; list order does.
    """
    payload = {
        "nodes": [strip_layout(n) for n in nodes],
        "edges": edges,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def sanitize_edges(
    nodes: list[dict[str, Any]], edges: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Drop edges whose source or target is not among *nodes*."""
    node_ids = {n.get("id") for n in nodes}
    return [e for e in edges if e.get("source") in node_ids and e.get("target") in node_ids]
