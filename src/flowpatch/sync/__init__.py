"""Local/remote state reconciliation and layout persistence."""

from flowpatch.sync.hashing import LAYOUT_KEYS, sanitize_edges, strip_layout, structural_hash
from flowpatch.sync.persister import LayoutPersister
from flowpatch.sync.reconciler import FlowStateReconciler, SyncOutcome, merge_positions

__all__ = [
    "LAYOUT_KEYS",
    "FlowStateReconciler",
    "LayoutPersister",
    "SyncOutcome",
    "merge_positions",
    "sanitize_edges",
    "strip_layout",
    "structural_hash",
]
