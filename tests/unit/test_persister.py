"""Tests for debounced layout persistence."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from flowpatch.sync.persister import LayoutPersister

if TYPE_CHECKING:
    from flowpatch.services import InMemoryBackend, ServiceBundle

FLOW_ID = "flow-1"


@pytest.fixture
def persister(services: ServiceBundle) -> LayoutPersister:
    return LayoutPersister(services.flows, FLOW_ID, debounce_ms=10)


class TestViewport:
    """Tests for viewport debouncing."""

    @pytest.mark.asyncio
    async def test_bursts_coalesce(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        for zoom in (1.0, 1.1, 1.2):
            persister.schedule_viewport({"x": 0, "y": 0, "zoom": zoom})

        await asyncio.sleep(0.05)

        assert persister.writes == 1
        assert backend.actions() == ["flows.update_viewport"]
        assert backend.flows[FLOW_ID]["viewport"]["zoom"] == 1.2
        assert not persister.has_pending

    @pytest.mark.asyncio
    async def test_flush_writes_immediately(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        persister.schedule_viewport({"x": 1, "y": 2, "zoom": 1})

        assert await persister.flush() is True
        await asyncio.sleep(0.05)

        assert persister.writes == 1
        assert backend.flows[FLOW_ID]["viewport"] == {"x": 1, "y": 2, "zoom": 1}

    @pytest.mark.asyncio
    async def test_flush_without_pending(self, persister: LayoutPersister) -> None:
        assert await persister.flush() is False

    @pytest.mark.asyncio
    async def test_cancel_drops_pending(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        persister.schedule_viewport({"x": 1, "y": 2, "zoom": 1})
        persister.cancel()

        await asyncio.sleep(0.05)

        assert backend.calls == []
        assert not persister.has_pending

    @pytest.mark.asyncio
    async def test_failed_write_reports_false(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        backend.fail_on("flows.update_viewport")
        persister.schedule_viewport({"x": 0, "y": 0, "zoom": 1})

        assert await persister.flush() is False
        assert persister.writes == 1


class TestDragStop:
    """Tests for position-only writes on drag release."""

    @pytest.mark.asyncio
    async def test_writes_positions_only(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        backend.flow(FLOW_ID)["nodes"] = [
            {"id": "a1", "type": "agent", "position": {"x": 0, "y": 0}},
            {"id": "i1", "type": "if", "position": {"x": 0, "y": 0}},
        ]

        ok = await persister.on_drag_stop(
            [{"id": "a1", "type": "changed-locally", "position": {"x": 10, "y": 20}}]
        )

        assert ok is True
        stored = backend.flows[FLOW_ID]["nodes"]
        assert stored[0] == {"id": "a1", "type": "agent", "position": {"x": 10, "y": 20}}
        assert stored[1]["position"] == {"x": 0, "y": 0}
        assert backend.calls == [
            (
                "flows.update_node_positions",
                (FLOW_ID, [{"id": "a1", "position": {"x": 10, "y": 20}}]),
            )
        ]

    @pytest.mark.asyncio
    async def test_nothing_to_write(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        assert await persister.on_drag_stop([{"id": "a1"}]) is False
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_failure_is_not_raised(
        self, persister: LayoutPersister, backend: InMemoryBackend
    ) -> None:
        backend.fail_on("flows.update_node_positions", "offline")
        ok = await persister.on_drag_stop([{"id": "a1", "position": {"x": 1, "y": 1}}])
        assert ok is False
