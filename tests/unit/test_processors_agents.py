"""Tests for agent processors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from flowpatch.patch.engine import PatchEngine
    from flowpatch.services import InMemoryBackend, RecordingInvalidator, RecordingNotifier


def _op(path: str, operation: str, value: Any = None) -> dict[str, Any]:
    return {"path": path, "operation": operation, "value": value}


class TestPromptMessages:
    """Tests for agents.<id>.promptMessages paths."""

    @pytest.mark.asyncio
    async def test_put_vivifies_agent(self, memory_engine: PatchEngine) -> None:
        """Appending to a missing agent creates the agent and the list."""
        resource: dict[str, Any] = {"agents": {}}
        result = await memory_engine.apply_operation(
            resource,
            _op("agents.a1.promptMessages", "put", {"role": "system", "promptBlocks": []}),
        )

        assert result.success
        messages = resource["agents"]["a1"]["promptMessages"]
        assert len(messages) == 1
        assert messages[0]["type"] == "plain"
        assert messages[0]["role"] == "system"
        assert messages[0]["id"]

    @pytest.mark.asyncio
    async def test_put_history_message(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {}
        await memory_engine.apply_operation(
            resource, _op("agents.a1.promptMessages", "put", {"type": "history", "end": 4})
        )

        message = resource["agents"]["a1"]["promptMessages"][0]
        assert message["type"] == "history"
        assert message["end"] == 4
        assert message["userPromptBlocks"] == []

    @pytest.mark.asyncio
    async def test_malformed_message_is_repaired(self, memory_engine: PatchEngine) -> None:
        """An invalid payload still produces a usable message."""
        resource: dict[str, Any] = {}
        result = await memory_engine.apply_operation(
            resource,
            _op("agents.a1.promptMessages", "put", {"id": "m1", "role": "user", "enabled": "?"}),
        )

        assert result.success
        message = resource["agents"]["a1"]["promptMessages"][0]
        assert message["id"] == "m1"
        assert message["role"] == "user"
        assert message["enabled"] is True

    @pytest.mark.asyncio
    async def test_put_at_index_inserts(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {
            "agents": {"a1": {"promptMessages": [{"id": "m1"}, {"id": "m2"}]}}
        }
        await memory_engine.apply_operation(
            resource, _op("agents.a1.promptMessages[1]", "put", {"id": "new", "role": "user"})
        )

        ids = [m["id"] for m in resource["agents"]["a1"]["promptMessages"]]
        assert ids == ["m1", "new", "m2"]

    @pytest.mark.asyncio
    async def test_remove_at_index(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {
            "agents": {"a1": {"promptMessages": [{"id": "m1"}, {"id": "m2"}]}}
        }
        await memory_engine.apply_operation(resource, _op("agents.a1.promptMessages[0]", "remove"))

        assert [m["id"] for m in resource["agents"]["a1"]["promptMessages"]] == ["m2"]

    @pytest.mark.asyncio
    async def test_set_collection_replaces(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"promptMessages": [{"id": "old"}]}}}
        await memory_engine.apply_operation(
            resource,
            _op("agents.a1.promptMessages", "set", [{"id": "x"}, {"type": "history"}]),
        )

        messages = resource["agents"]["a1"]["promptMessages"]
        assert [m["type"] for m in messages] == ["plain", "history"]
        assert messages[0]["id"] == "x"

    @pytest.mark.asyncio
    async def test_remove_collection_empties(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"promptMessages": [{"id": "m1"}]}}}
        await memory_engine.apply_operation(resource, _op("agents.a1.promptMessages", "remove"))
        assert resource["agents"]["a1"]["promptMessages"] == []

    @pytest.mark.asyncio
    async def test_message_field_set(
        self,
        engine: PatchEngine,
        seeded_backend: InMemoryBackend,
        invalidator: RecordingInvalidator,
        flow_resource: dict[str, Any],
    ) -> None:
        """Setting a field on a missing message pads the list first."""
        result = await engine.apply_operation(
            flow_resource, _op("agents.a1.promptMessages[0].role", "set", "assistant")
        )

        assert result.success
        messages = flow_resource["agents"]["a1"]["promptMessages"]
        assert messages[0]["role"] == "assistant"
        assert seeded_backend.entities["agents"]["a1"]["promptMessages"] == messages
        assert invalidator.invalidated == [("agents", "a1")]

    @pytest.mark.asyncio
    async def test_block_list_field_builds_blocks(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"promptMessages": [{"type": "history"}]}}}
        await memory_engine.apply_operation(
            resource,
            _op("agents.a1.promptMessages[0].assistantPromptBlocks", "set", [{"template": "t"}]),
        )

        blocks = resource["agents"]["a1"]["promptMessages"][0]["assistantPromptBlocks"]
        assert blocks[0]["name"] == "Assistant Block"
        assert blocks[0]["template"] == "t"
        assert blocks[0]["id"]

    @pytest.mark.asyncio
    async def test_block_list_field_requires_list(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {}
        result = await memory_engine.apply_operation(
            resource, _op("agents.a1.promptMessages[0].promptBlocks", "set", "text")
        )
        assert not result.success
        assert result.code == "unsupported_operation"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["id", "type"])
    async def test_immutable_message_fields(self, memory_engine: PatchEngine, field: str) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"promptMessages": [{"id": "m1"}]}}}
        result = await memory_engine.apply_operation(
            resource, _op(f"agents.a1.promptMessages[0].{field}", "set", "x")
        )
        assert not result.success
        assert resource["agents"]["a1"]["promptMessages"] == [{"id": "m1"}]


class TestNestedMessages:
    """Tests for messages and blocks nested under a prompt message."""

    @pytest.mark.asyncio
    async def test_deep_set_pads_every_level(self, memory_engine: PatchEngine) -> None:
        """A deep indexed set creates every missing level with defaults."""
        resource: dict[str, Any] = {}
        result = await memory_engine.apply_operation(
            resource,
            _op(
                "agents.a1.promptMessages[0].messages[1].blocks[2]",
                "set",
                {"template": "Hello"},
            ),
        )

        assert result.success
        prompt = resource["agents"]["a1"]["promptMessages"]
        assert len(prompt) == 1
        nested = prompt[0]["messages"]
        assert len(nested) == 2
        blocks = nested[1]["blocks"]
        assert len(blocks) == 3
        assert blocks[2]["template"] == "Hello"
        assert all(b["id"] for b in blocks)
        assert nested[0]["role"] == "user"

    @pytest.mark.asyncio
    async def test_append_nested_message(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"promptMessages": [{"id": "m1"}]}}}
        await memory_engine.apply_operation(
            resource, _op("agents.a1.promptMessages[0].messages", "put", {"role": "assistant"})
        )
        nested = resource["agents"]["a1"]["promptMessages"][0]["messages"]
        assert nested[0]["role"] == "assistant"
        assert nested[0]["blocks"] == []

    @pytest.mark.asyncio
    async def test_nested_message_field(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {
            "agents": {"a1": {"promptMessages": [{"id": "m1", "messages": [{"id": "n1"}]}]}}
        }
        await memory_engine.apply_operation(
            resource, _op("agents.a1.promptMessages[0].messages[0].role", "set", "system")
        )
        nested = resource["agents"]["a1"]["promptMessages"][0]["messages"][0]
        assert nested == {"id": "n1", "role": "system"}

    @pytest.mark.asyncio
    async def test_nested_message_id_immutable(self, memory_engine: PatchEngine) -> None:
        result = await memory_engine.apply_operation(
            {}, _op("agents.a1.promptMessages[0].messages[0].id", "set", "x")
        )
        assert result.code == "unsupported_operation"

    @pytest.mark.asyncio
    async def test_remove_block(self, memory_engine: PatchEngine) -> None:
        blocks = [{"id": "b1"}, {"id": "b2"}, {"id": "b3"}]
        resource: dict[str, Any] = {
            "agents": {"a1": {"promptMessages": [{"messages": [{"blocks": blocks}]}]}}
        }
        await memory_engine.apply_operation(
            resource, _op("agents.a1.promptMessages[0].messages[0].blocks[1]", "remove")
        )
        remaining = resource["agents"]["a1"]["promptMessages"][0]["messages"][0]["blocks"]
        assert [b["id"] for b in remaining] == ["b1", "b3"]

    @pytest.mark.asyncio
    async def test_append_block(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {}
        await memory_engine.apply_operation(
            resource,
            _op("agents.a1.promptMessages[0].messages[0].blocks", "put", {"content": "x"}),
        )
        block = resource["agents"]["a1"]["promptMessages"][0]["messages"][0]["blocks"][0]
        assert block["template"] == "x"


class TestAgentFields:
    """Tests for agents.<id>.<field> and the agent entity itself."""

    @pytest.mark.asyncio
    async def test_name_persists(
        self,
        engine: PatchEngine,
        seeded_backend: InMemoryBackend,
        invalidator: RecordingInvalidator,
        flow_resource: dict[str, Any],
    ) -> None:
        result = await engine.apply_operation(flow_resource, _op("agents.a1.name", "set", "Bard"))

        assert result.success
        assert flow_resource["agents"]["a1"]["name"] == "Bard"
        assert seeded_backend.entities["agents"]["a1"]["name"] == "Bard"
        assert invalidator.invalidated == [("agents", "a1")]

    @pytest.mark.asyncio
    async def test_other_fields_stay_local(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        await engine.apply_operation(flow_resource, _op("agents.a1.temperature", "set", 0.2))

        assert flow_resource["agents"]["a1"]["temperature"] == 0.2
        assert seeded_backend.calls == []

    @pytest.mark.asyncio
    async def test_remove_field(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"id": "a1", "note": "x"}}}
        await memory_engine.apply_operation(resource, _op("agents.a1.note", "remove"))
        assert resource["agents"]["a1"] == {"id": "a1"}

    @pytest.mark.asyncio
    async def test_put_on_field_rejected(self, memory_engine: PatchEngine) -> None:
        result = await memory_engine.apply_operation({}, _op("agents.a1.name", "put", "x"))
        assert result.code == "unsupported_operation"
        assert "Unsupported operation 'put'" in (result.error or "")

    @pytest.mark.asyncio
    async def test_set_entity_creates_through_service(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        """A new agent gets defaults and the first unused palette color."""
        result = await engine.apply_operation(flow_resource, _op("agents.a2", "set", {}))

        assert result.success
        agent = flow_resource["agents"]["a2"]
        assert agent["name"] == "Agent a2"
        assert agent["color"] == "#BEF264"
        assert agent["promptMessages"] == []
        assert seeded_backend.entities["agents"]["a2"]["flowId"] == "flow-1"

    @pytest.mark.asyncio
    async def test_remove_entity(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        result = await engine.apply_operation(flow_resource, _op("agents.a1", "remove"))

        assert result.success
        assert "a1" not in flow_resource["agents"]
        assert "a1" not in seeded_backend.entities["agents"]
        # Graph nodes are managed through flow.nodes
        assert any(n["id"] == "a1" for n in flow_resource["nodes"])

    @pytest.mark.asyncio
    async def test_put_entity_rejected(self, memory_engine: PatchEngine) -> None:
        result = await memory_engine.apply_operation({}, _op("agents.a1", "put", {}))
        assert result.code == "unsupported_operation"


class TestSchemaFields:
    """Tests for agents.<id>.schemaFields paths."""

    @pytest.mark.asyncio
    async def test_append(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {}
        await memory_engine.apply_operation(
            resource, _op("agents.a1.schemaFields", "put", {"name": "mood"})
        )
        field = resource["agents"]["a1"]["schemaFields"][0]
        assert field["name"] == "mood"
        assert field["type"] == "string"

    @pytest.mark.asyncio
    async def test_property_decodes_json(self, memory_engine: PatchEngine) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"schemaFields": [{"id": "f1"}]}}}
        await memory_engine.apply_operation(
            resource, _op("agents.a1.schemaFields[0].defaultValue", "set", '["a", "b"]')
        )
        assert resource["agents"]["a1"]["schemaFields"][0]["defaultValue"] == ["a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("path", "operation"),
        [
            ("agents.a1.schemaFields[0].name", "remove"),
            ("agents.a1.schemaFields[0].name", "put"),
            ("agents.a1.schemaFields[0].id", "set"),
        ],
    )
    async def test_property_only_supports_set(
        self, memory_engine: PatchEngine, path: str, operation: str
    ) -> None:
        resource: dict[str, Any] = {"agents": {"a1": {"schemaFields": [{"id": "f1"}]}}}
        result = await memory_engine.apply_operation(resource, _op(path, operation, "x"))
        assert result.code == "unsupported_operation"

    @pytest.mark.asyncio
    async def test_persisted_through_service(
        self, engine: PatchEngine, seeded_backend: InMemoryBackend, flow_resource: dict[str, Any]
    ) -> None:
        await engine.apply_operation(
            flow_resource, _op("agents.a1.schemaFields[0]", "set", {"name": "score"})
        )
        assert seeded_backend.actions() == ["agents.update_schema_fields"]
        stored = seeded_backend.entities["agents"]["a1"]["schemaFields"]
        assert stored[0]["name"] == "score"


class TestAgentPersistenceFailure:
    """Failed writes leave the agent untouched."""

    @pytest.mark.asyncio
    async def test_prompt_message_write_failure(
        self,
        engine: PatchEngine,
        seeded_backend: InMemoryBackend,
        notifier: RecordingNotifier,
        invalidator: RecordingInvalidator,
        flow_resource: dict[str, Any],
    ) -> None:
        seeded_backend.fail_on("agents.update_prompt_messages")

        result = await engine.apply_operation(
            flow_resource, _op("agents.a1.promptMessages", "put", {"role": "user"})
        )

        assert not result.success
        assert result.code == "persistence"
        assert flow_resource["agents"]["a1"]["promptMessages"] == []
        assert notifier.notifications[0][0] == "Failed to add prompt message"
        assert invalidator.invalidated == []

    @pytest.mark.asyncio
    async def test_missing_remote_entity_fails(
        self, engine: PatchEngine, flow_resource: dict[str, Any]
    ) -> None:
        """Updating an agent the backend does not know is a persistence failure."""
        result = await engine.apply_operation(flow_resource, _op("agents.a1.name", "set", "x"))

        assert not result.success
        assert "not found" in (result.error or "")
        assert flow_resource["agents"]["a1"]["name"] == "Narrator"
