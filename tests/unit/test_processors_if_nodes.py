"""Tests for if-node processors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from flowpatch.patch.engine import PatchEngine
    from flowpatch.services import InMemoryBackend


def _op(path: str, operation: str, value: Any = None) -> dict[str, Any]:
    return {"path": path, "operation": operation, "value": value}


class TestConditions:
    """Tests for ifNodes.<id>.conditions paths."""

    @pytest.mark.asyncio
    async def test_set_first_condition(self, memory_engine: PatchEngine) -> None:
        """Setting index 0 of an empty list bootstraps the first condition."""
        resource: dict[str, Any] = {"ifNodes": {"n1": {"conditions": []}}}
        condition = {
            "dataType": "string",
            "value1": "x",
            "operator": "string_equals",
            "value2": "y",
        }

        result = await memory_engine.apply_operation(
            resource, _op("ifNodes.n1.conditions[0]", "set", condition)
        )

        assert result.success
        conditions = resource["ifNodes"]["n1"]["conditions"]
        assert len(conditions) == 1
        assert conditions[0]["id"]
        assert conditions[0] == {**condition, "id": conditions[0]["id"]}

    @pytest.mark.asyncio
    async def test_put_at_index_of_empty_list_rejected(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"ifNodes": {"n1": {"conditions": []}}}
        result = await memory_engine.apply_operation(
            resource, _op("ifNodes.n1.conditions[0]", "put", {"value1": "x"})
        )

        assert not result.success
        assert result.code == "unsupported_operation"
        assert "bootstrap" in (result.error or "")
        assert resource["ifNodes"]["n1"]["conditions"] == []

    @pytest.mark.asyncio
    async def test_put_on_collection_appends(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"ifNodes": {"n1": {"conditions": []}}}
        await memory_engine.apply_operation(resource, _op("ifNodes.n1.conditions", "put", {}))

        condition = resource["ifNodes"]["n1"]["conditions"][0]
        assert condition["dataType"] is None
        assert condition["operator"] is None

    @pytest.mark.asyncio
    async def test_set_past_end_pads_with_incomplete(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {}
        await memory_engine.apply_operation(
            resource, _op("ifNodes.n1.conditions[2]", "set", {"dataType": "number"})
        )

        conditions = resource["ifNodes"]["n1"]["conditions"]
        assert len(conditions) == 3
        assert [c["dataType"] for c in conditions] == [None, None, "number"]
        assert len({c["id"] for c in conditions}) == 3

    @pytest.mark.asyncio
    async def test_put_at_index_inserts(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"ifNodes": {"n1": {"conditions": [{"id": "c1"}]}}}
        await memory_engine.apply_operation(
            resource, _op("ifNodes.n1.conditions[0]", "put", {"id": "c0"})
        )
        assert [c["id"] for c in resource["ifNodes"]["n1"]["conditions"]] == ["c0", "c1"]

    @pytest.mark.asyncio
    async def test_conditions_persisted(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        await engine.apply_operation(
            flow_resource, _op("ifNodes.i1.conditions", "put", {"value1": "a"})
        )

        assert seeded_backend.actions() == ["if_nodes.update_conditions"]
        stored = seeded_backend.entities["if_nodes"]["i1"]["conditions"]
        assert stored[0]["value1"] == "a"


class TestIfNodeFields:
    """Tests for ifNodes.<id>.<field>."""

    @pytest.mark.asyncio
    async def test_logic_operator_persisted(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        result = await engine.apply_operation(
            flow_resource, _op("ifNodes.i1.logicOperator", "set", "OR")
        )

        assert result.success
        assert flow_resource["ifNodes"]["i1"]["logicOperator"] == "OR"
        assert seeded_backend.entities["if_nodes"]["i1"]["logicOperator"] == "OR"

    @pytest.mark.asyncio
    async def test_invalid_logic_operator(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"ifNodes": {"n1": {"logicOperator": "AND"}}}
        result = await memory_engine.apply_operation(
            resource, _op("ifNodes.n1.logicOperator", "set", "XOR")
        )

        assert result.code == "unsupported_operation"
        assert resource["ifNodes"]["n1"]["logicOperator"] == "AND"

    @pytest.mark.asyncio
    async def test_logic_operator_cannot_be_removed(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"ifNodes": {"n1": {"logicOperator": "AND"}}}
        result = await memory_engine.apply_operation(
            resource, _op("ifNodes.n1.logicOperator", "remove")
        )
        assert not result.success
        assert resource["ifNodes"]["n1"]["logicOperator"] == "AND"

    @pytest.mark.asyncio
    async def test_name_persisted(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        await engine.apply_operation(flow_resource, _op("ifNodes.i1.name", "set", "Gate"))
        assert seeded_backend.entities["if_nodes"]["i1"]["name"] == "Gate"

    @pytest.mark.asyncio
    async def test_new_if_node_defaults(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {}
        await memory_engine.apply_operation(resource, _op("ifNodes.n9", "set", {}))

        node = resource["ifNodes"]["n9"]
        assert node["name"] == "If Node n9"
        assert node["logicOperator"] == "AND"
        assert node["conditions"] == []
        assert node["color"] == "#A5B4FC"

    @pytest.mark.asyncio
    async def test_create_failure_names_the_service(
        self, engine: PatchEngine, backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        backend.fail_on("if_nodes.create", "rejected")

        result = await engine.apply_operation(flow_resource, _op("ifNodes.i9", "set", {}))

        assert result.code == "persistence"
        assert result.error == "if_nodes.create failed: rejected"
        assert "i9" not in flow_resource["ifNodes"]
