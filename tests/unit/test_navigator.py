"""Tests for navigation, vivification and list editing."""

from __future__ import annotations

from typing import Any

import pytest

from flowpatch.patch.defaults import build_condition
from flowpatch.patch.navigator import (
    append,
    container_for,
    element_at,
    ensure_dict,
    ensure_list,
    insert_at,
    navigate_to_path,
    pad_list,
    remove_at,
    set_at,
)


def _builder(data: dict[str, Any]) -> dict[str, Any]:
    return {"id": data.get("id", "generated"), "filler": True, **data}


class TestContainerFor:
    """Tests for container vivification choices."""

    @pytest.mark.parametrize(
        "key", ["entries", "promptMessages", "messages", "blocks", "scenarios", "fields"]
    )
    def test_collection_keys_become_lists(self, key: str) -> None:
        assert container_for(key, next_is_index=False) == []

    def test_key_before_index_becomes_list(self) -> None:
        assert container_for("anything", next_is_index=True) == []

    def test_other_keys_become_dicts(self) -> None:
        assert container_for("agents", next_is_index=False) == {}


class TestNavigateToPath:
    """Tests for navigate_to_path."""

    def test_vivifies_collection(self) -> None:
        """A known collection key at the end of the path becomes a list."""
        root: dict[str, Any] = {}
        nav = navigate_to_path(root, "agents.a1.promptMessages")

        assert nav.target == []
        assert root == {"agents": {"a1": {"promptMessages": []}}}
        assert nav.parent is root["agents"]["a1"]
        assert nav.last == "promptMessages"

    def test_vivifies_list_before_index(self) -> None:
        root: dict[str, Any] = {}
        nav = navigate_to_path(root, "rows[1].cell")

        assert isinstance(root["rows"], list)
        assert len(root["rows"]) == 2
        assert nav.target == {}

    def test_existing_structure_is_reused(self) -> None:
        root: dict[str, Any] = {"flow": {"name": "x"}}
        nav = navigate_to_path(root, "flow.name")
        assert nav.target == "x"

    def test_create_missing_false_raises(self) -> None:
        with pytest.raises(KeyError):
            navigate_to_path({}, "a.b", create_missing=False)

    def test_index_on_dict_raises(self) -> None:
        with pytest.raises(TypeError):
            navigate_to_path({"a": {}}, "a[0]")

    def test_key_on_list_raises(self) -> None:
        with pytest.raises(TypeError):
            navigate_to_path({"a": []}, "a.b")

    def test_builders_pad_lists(self) -> None:
        """Lists with a builder are padded with built elements, never bare containers."""
        root: dict[str, Any] = {}
        nav = navigate_to_path(
            root, "ifNodes.i1.conditions[2].value1", builders={"conditions": build_condition}
        )

        conditions = root["ifNodes"]["i1"]["conditions"]
        assert len(conditions) == 3
        assert all(c["id"] and "operator" in c for c in conditions)
        assert nav.parent is conditions[2]
        assert nav.last == "value1"

    def test_builders_rebuild_non_object_elements(self) -> None:
        root: dict[str, Any] = {"rows": ["garbage", {"id": "keep"}]}
        navigate_to_path(root, "rows[0].cell", builders={"rows": _builder})

        assert root["rows"][0]["filler"] is True
        assert root["rows"][1] == {"id": "keep"}

    def test_builder_only_applies_to_its_own_list(self) -> None:
        root: dict[str, Any] = {}
        navigate_to_path(root, "outer[1].messages[0]", builders={"messages": _builder})

        assert root["outer"][0] == {}
        assert root["outer"][1]["messages"][0]["filler"] is True

    def test_collection_key_with_wrong_type_is_reset(self) -> None:
        root: dict[str, Any] = {"blocks": {"not": "a list"}}
        nav = navigate_to_path(root, "blocks")
        assert nav.target == []
        assert root["blocks"] == []

    def test_create_missing_false_rejects_short_list(self) -> None:
        with pytest.raises(IndexError):
            navigate_to_path({"rows": []}, "rows[0]", create_missing=False)


class TestListEditing:
    """Tests for the set/put/remove list helpers."""

    def test_pad_list_fills_holes_and_extends(self) -> None:
        items: list[Any] = [None]
        pad_list(items, 3, _builder)
        assert len(items) == 3
        assert all(item["filler"] for item in items)

    def test_set_at_pads_short_list(self) -> None:
        """Indices below the target hold default-built placeholders."""
        items: list[Any] = []
        set_at(items, 2, {"id": "c", "value1": "x"}, build_condition)

        assert len(items) == 3
        for placeholder in items[:2]:
            assert placeholder["dataType"] is None
            assert placeholder["operator"] is None
            assert placeholder["id"]
        assert items[2]["id"] == "c"
        assert items[2]["value1"] == "x"

    def test_set_at_keeps_previous_id(self) -> None:
        items: list[Any] = [{"id": "keep", "filler": False}]
        element = set_at(items, 0, {"name": "new"}, _builder)
        assert element["id"] == "keep"
        assert element["name"] == "new"

    def test_insert_at_shifts_right(self) -> None:
        items: list[Any] = [{"id": "a"}, {"id": "b"}]
        insert_at(items, 1, {"id": "x"}, _builder)
        assert [i["id"] for i in items] == ["a", "x", "b"]

    def test_insert_past_end_pads_to_index(self) -> None:
        items: list[Any] = []
        insert_at(items, 2, {"id": "x"}, _builder)
        assert len(items) == 3
        assert items[2]["id"] == "x"

    def test_append(self) -> None:
        items: list[Any] = [{"id": "a"}]
        append(items, None, _builder)
        assert len(items) == 2
        assert items[1]["id"] == "generated"

    def test_remove_at(self) -> None:
        items: list[Any] = [{"id": "a"}, {"id": "b"}, {"id": "c"}]
        removed = remove_at(items, 1)
        assert removed == {"id": "b"}
        assert [i["id"] for i in items] == ["a", "c"]

    def test_remove_at_out_of_range(self) -> None:
        items: list[Any] = [{"id": "a"}]
        assert remove_at(items, 5) is None
        assert len(items) == 1

    def test_element_at_repairs_non_dict(self) -> None:
        items: list[Any] = ["garbage"]
        element = element_at(items, 0, _builder)
        assert element["filler"] is True
        assert items[0] is element


class TestEnsureHelpers:
    """Tests for ensure_dict / ensure_list."""

    def test_ensure_dict_replaces_wrong_type(self) -> None:
        container: dict[str, Any] = {"x": []}
        assert ensure_dict(container, "x") == {}
        assert container["x"] == {}

    def test_ensure_list_keeps_existing(self) -> None:
        existing = [1]
        container: dict[str, Any] = {"x": existing}
        assert ensure_list(container, "x") is existing
