"""Tests for structural hashing."""

from __future__ import annotations

from flowpatch.sync.hashing import sanitize_edges, strip_layout, structural_hash

NODES = [
    {"id": "a", "type": "agent", "position": {"x": 0, "y": 0}},
    {"id": "b", "type": "if", "position": {"x": 100, "y": 0}},
]
EDGES = [{"id": "e1", "source": "a", "target": "b"}]


class TestStructuralHash:
    def test_is_hex_sha256(self) -> None:
        digest = structural_hash(NODES, EDGES)
        assert len(digest) == 64
        int(digest, 16)

    def test_ignores_positions(self) -> None:
        moved = [{**n, "position": {"x": 5, "y": 9}} for n in NODES]
        assert structural_hash(moved, EDGES) == structural_hash(NODES, EDGES)

    def test_ignores_render_state(self) -> None:
        rendered = [
            {**n, "selected": True, "dragging": False, "measured": {"width": 1}, "width": 200}
            for n in NODES
        ]
        assert structural_hash(rendered, EDGES) == structural_hash(NODES, EDGES)

    def test_key_order_irrelevant(self) -> None:
        reordered = [{"position": n["position"], "type": n["type"], "id": n["id"]} for n in NODES]
        assert structural_hash(reordered, EDGES) == structural_hash(NODES, EDGES)

    def test_content_change_detected(self) -> None:
        retyped = [NODES[0], {**NODES[1], "type": "dataStore"}]
        assert structural_hash(retyped, EDGES) != structural_hash(NODES, EDGES)

    def test_edges_change_detected(self) -> None:
        assert structural_hash(NODES, []) != structural_hash(NODES, EDGES)

    def test_list_order_matters(self) -> None:
        assert structural_hash(list(reversed(NODES)), EDGES) != structural_hash(NODES, EDGES)


class TestHelpers:
    def test_strip_layout_copies(self) -> None:
        node = {"id": "a", "position": {"x": 1}, "selected": True, "data": {"k": 1}}
        stripped = strip_layout(node)

        assert stripped == {"id": "a", "data": {"k": 1}}
        assert "position" in node

    def test_sanitize_edges_drops_dangling(self) -> None:
        edges = [
            {"id": "e1", "source": "a", "target": "b"},
            {"id": "e2", "source": "a", "target": "gone"},
            {"id": "e3", "source": "gone", "target": "b"},
        ]
        assert [e["id"] for e in sanitize_edges(NODES, edges)] == ["e1"]
