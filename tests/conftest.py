"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from flowpatch.patch.engine import PatchEngine
from flowpatch.services import (
    InMemoryBackend,
    RecordingInvalidator,
    RecordingNotifier,
    ServiceBundle,
)

FLOW_ID = "flow-1"

_BACKEND_KINDS = {"agents": "agents", "dataStoreNodes": "data_store_nodes", "ifNodes": "if_nodes"}


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def backend() -> InMemoryBackend:
    """Fresh in-memory persistence backend."""
    return InMemoryBackend()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


@pytest.fixture
def services(
    backend: InMemoryBackend, notifier: RecordingNotifier, invalidator: RecordingInvalidator
) -> ServiceBundle:
    """Service bundle over the in-memory backend."""
    return backend.bundle(notifier=notifier, invalidator=invalidator)


@pytest.fixture
def engine(services: ServiceBundle) -> PatchEngine:
    """Engine wired to the in-memory backend."""
    return PatchEngine(services=services)


@pytest.fixture
def memory_engine() -> PatchEngine:
    """Engine without services; every change stays in memory."""
    return PatchEngine()


@pytest.fixture
def flow_resource() -> dict[str, Any]:
    """A small flow: start -> agent a1 -> if i1 -> data store d1 -> end."""
    return {
        "id": FLOW_ID,
        "name": "Demo flow",
        "nodes": [
            {"id": "start", "type": "start", "position": {"x": 0, "y": 0}},
            {"id": "a1", "type": "agent", "position": {"x": 100, "y": 0}},
            {"id": "i1", "type": "if", "position": {"x": 200, "y": 0}},
            {"id": "d1", "type": "dataStore", "position": {"x": 300, "y": 0}},
            {"id": "end", "type": "end", "position": {"x": 400, "y": 0}},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "a1"},
            {"id": "e2", "source": "a1", "target": "i1"},
            {"id": "e3", "source": "i1", "target": "d1"},
            {"id": "e4", "source": "d1", "target": "end"},
        ],
        "agents": {
            "a1": {
                "id": "a1",
                "name": "Narrator",
                "color": "#A5B4FC",
                "promptMessages": [],
                "schemaFields": [],
            }
        },
        "ifNodes": {
            "i1": {
                "id": "i1",
                "name": "Branch",
                "color": "#FDBA74",
                "logicOperator": "AND",
                "conditions": [],
            }
        },
        "dataStoreNodes": {
            "d1": {"id": "d1", "name": "Store", "color": "#3b82f6", "dataStoreFields": []}
        },
        "data_store_schema": {"fields": []},
    }


@pytest.fixture
def seeded_backend(backend: InMemoryBackend, flow_resource: dict[str, Any]) -> InMemoryBackend:
    """Backend already holding the entities of ``flow_resource``."""
    flow = backend.flow(FLOW_ID)
    flow["nodes"] = copy.deepcopy(flow_resource["nodes"])
    flow["edges"] = copy.deepcopy(flow_resource["edges"])
    for map_key, kind in _BACKEND_KINDS.items():
        for entity_id, entity in flow_resource[map_key].items():
            backend.entities[kind][entity_id] = {**copy.deepcopy(entity), "flowId": FLOW_ID}
    return backend
