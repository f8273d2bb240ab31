"""Local/remote reconciliation of the rendered flow graph.

The reconciler owns the working copy of nodes and edges the editor shows.
Authoritative snapshots arrive through :meth:`FlowStateReconciler.receive`;
local edits are reported through :meth:`record_local_change` and
:meth:`mark_saved`. Decisions, in order:

1. different flow id: adopt outright and reset (``switched``)
2. same structural hash as the last snapshot: ignore (``unchanged``)
3. no unsaved local change: adopt (``adopted``)
4. unsaved change already saved: the snapshot is its echo; adopt (``echo``)
5. otherwise: authoritative content, local positions (``merged``)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from flowpatch.observability.logging import get_logger
from flowpatch.sync.hashing import sanitize_edges, structural_hash

log = get_logger(__name__)


class SyncOutcome(StrEnum):
    SWITCHED = "switched"
    UNCHANGED = "unchanged"
    ADOPTED = "adopted"
    ECHO = "echo"
    MERGED = "merged"


@dataclass
class FlowStateReconciler:
    """Working copy of one flow's nodes and edges.

    Attributes:
        flow_id: Flow currently shown, or None before the first snapshot.
        nodes: Rendered nodes.
        edges: Rendered edges.
        external_hash: Structural hash of the last authoritative snapshot.
        saved_hash: Structural hash of the last content known to be saved.
        has_local_change: Whether local edits may not be saved yet.
    """

    flow_id: str | None = None
    nodes: list[dict[str, Any]] = field(default_factory=list)
    edges: list[dict[str, Any]] = field(default_factory=list)
    external_hash: str | None = None
    saved_hash: str | None = None
    has_local_change: bool = False

    def receive(
        self,
        flow_id: str,
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]],
    ) -> SyncOutcome:
        """Apply an authoritative snapshot and report what was done."""
        nodes = copy.deepcopy(nodes)
        edges = sanitize_edges(nodes, copy.deepcopy(edges))
        incoming_hash = structural_hash(nodes, edges)

        if flow_id != self.flow_id:
            self.flow_id = flow_id
            self.nodes, self.edges = nodes, edges
            self.has_local_change = False
            self.saved_hash = incoming_hash
            outcome = SyncOutcome.SWITCHED
        elif incoming_hash == self.external_hash:
            log.debug("sync_unchanged", flow_id=flow_id)
            return SyncOutcome.UNCHANGED
        elif not self.has_local_change or not self.nodes:
            self.nodes, self.edges = nodes, edges
            self.has_local_change = False
            self.saved_hash = incoming_hash
            outcome = SyncOutcome.ADOPTED
        elif self.local_hash() == self.saved_hash:
            self.nodes, self.edges = nodes, edges
            self.has_local_change = False
            outcome = SyncOutcome.ECHO
        else:
            self.nodes = merge_positions(nodes, self.nodes)
            self.edges = edges
            outcome = SyncOutcome.MERGED

        self.external_hash = incoming_hash
        log.debug("sync_applied", flow_id=flow_id, outcome=str(outcome), nodes=len(self.nodes))
        return outcome

    def record_local_change(
        self,
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]] | None = None,
    ) -> None:
        """Replace the working copy with locally edited nodes (and edges)."""
        self.nodes = copy.deepcopy(nodes)
        if edges is not None:
            self.edges = copy.deepcopy(edges)
        self.has_local_change = True

    def mark_saved(self) -> None:
        """Record that the current working copy has been persisted."""
        self.saved_hash = self.local_hash()

    def local_hash(self) -> str:
        return structural_hash(self.nodes, self.edges)


def merge_positions(
    authoritative: list[dict[str, Any]], local: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Authoritative nodes with each node's local ``position`` kept.

    Nodes only present locally are dropped; nodes only present in
    *authoritative* keep their own position.
    """
    positions = {n.get("id"): n["position"] for n in local if "position" in n}
    merged = []
    for node in authoritative:
        if node.get("id") in positions:
            node = {**node, "position": copy.deepcopy(positions[node.get("id")])}
        merged.append(node)
    return merged
