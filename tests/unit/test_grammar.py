"""Tests for path parsing and pattern matching."""

from __future__ import annotations

import pytest

from flowpatch.patch import patterns
from flowpatch.patch.errors import InvalidPathError
from flowpatch.patch.grammar import PathSegment, match_path, parse_path


class TestParsePath:
    """Tests for parse_path."""

    def test_keys_and_indices(self) -> None:
        """Mixed dotted and bracketed segments keep their order."""
        parsed = parse_path("a[1].b")
        assert parsed.segments == (
            PathSegment("key", "a"),
            PathSegment("index", 1),
            PathSegment("key", "b"),
        )

    def test_deep_agent_path(self) -> None:
        parsed = parse_path("agents.a1.promptMessages[0].messages[1].blocks[2]")
        assert parsed.keys == ["agents", "a1", "promptMessages", "messages", "blocks"]
        assert parsed.indices == [0, 1, 2]

    def test_dotted_digits_are_indices(self) -> None:
        """``a.0`` addresses the same element as ``a[0]``."""
        assert parse_path("a.0").segments == parse_path("a[0]").segments

    def test_consecutive_indices(self) -> None:
        parsed = parse_path("grid[1][2]")
        assert parsed.indices == [1, 2]

    @pytest.mark.parametrize(
        "path",
        ["", "a..b", ".a", "a.", "a[", "a[]", "a[-1]", "a[x]", "[0]", "a]0["],
    )
    def test_malformed_paths_raise(self, path: str) -> None:
        """Empty keys, unbalanced brackets and bad indices are rejected."""
        with pytest.raises(InvalidPathError):
            parse_path(path)


class TestMatchPath:
    """Tests for match_path."""

    def test_groups_indices_and_keys(self) -> None:
        match = match_path("agents.a1.promptMessages[3].role", patterns.AGENT_PROMPT_MESSAGE_FIELD)
        assert match.matches
        assert match.groups == {"group1": "a1", "group2": "3", "group3": "role"}
        assert match.indices == [3]
        assert match.keys == ["agents", "a1", "promptMessages", "role"]

    def test_group_accessors(self) -> None:
        match = match_path("ifNodes.n1.conditions[4]", patterns.IF_CONDITIONS_INDEXED)
        assert match.group(1) == "n1"
        assert match.index_group(2) == 4

    def test_missing_group_raises_key_error(self) -> None:
        match = match_path("flow.name", patterns.FLOW_NAME)
        with pytest.raises(KeyError):
            match.group(1)

    def test_no_match_is_empty(self) -> None:
        """A non-matching result carries no captures."""
        match = match_path("agents.a1.name", patterns.IF_NODE_FIELD)
        assert not match.matches
        assert match.groups == {}
        assert match.indices == []
        assert match.keys == []

    def test_patterns_are_anchored(self) -> None:
        """A pattern never matches a prefix or suffix of a longer path."""
        assert not match_path("agents.a1.promptMessages[0]", patterns.AGENT_BASE).matches
        assert not match_path("x.flow.name", patterns.FLOW_NAME).matches

    def test_ids_cannot_span_segments(self) -> None:
        assert not match_path("agents.a.b.c", patterns.AGENT_FIELD).matches


class TestPatternTable:
    """Tests for the per-family pattern table."""

    def test_every_family_present(self) -> None:
        assert set(patterns.PATTERNS) == {"flow", "agents", "dataStoreNodes", "ifNodes"}

    def test_every_pattern_anchored(self) -> None:
        for family in patterns.PATTERNS.values():
            for pattern in family.values():
                assert pattern.pattern.startswith("^")
                assert pattern.pattern.endswith("$")
