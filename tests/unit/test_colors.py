"""Tests for process-node color assignment."""

from __future__ import annotations

from typing import Any

from flowpatch.config import DEFAULT_COLOR_PALETTE
from flowpatch.lifecycle.colors import assign_color, used_colors


def _resource(*colors: str) -> dict[str, Any]:
    return {"agents": {f"a{i}": {"color": c} for i, c in enumerate(colors)}}


class TestUsedColors:
    def test_counts_across_entity_maps(self) -> None:
        resource = {
            "agents": {"a1": {"color": "#111"}},
            "dataStoreNodes": {"d1": {"color": "#111"}},
            "ifNodes": {"i1": {"color": "#222"}, "i2": {}},
        }
        assert used_colors(resource) == {"#111": 2, "#222": 1}

    def test_ignores_malformed_maps(self) -> None:
        assert used_colors({"agents": [], "ifNodes": {"i1": "nope"}}) == {}


class TestAssignColor:
    def test_empty_resource_gets_first_color(self) -> None:
        assert assign_color({}) == DEFAULT_COLOR_PALETTE[0]

    def test_skips_used_colors(self) -> None:
        resource = _resource(DEFAULT_COLOR_PALETTE[0], DEFAULT_COLOR_PALETTE[1])
        assert assign_color(resource) == DEFAULT_COLOR_PALETTE[2]

    def test_exhausted_palette_picks_least_used(self) -> None:
        """Once every color is taken, the least-used one wins."""
        resource = _resource("#a", "#a", "#b", "#c", "#c")
        assert assign_color(resource, ["#a", "#b", "#c"]) == "#b"

    def test_ties_go_to_earliest(self) -> None:
        resource = _resource("#a", "#b", "#c")
        assert assign_color(resource, ["#c", "#b", "#a"]) == "#c"

    def test_colors_outside_palette_ignored(self) -> None:
        assert assign_color(_resource("#zzz"), ["#a"]) == "#a"
