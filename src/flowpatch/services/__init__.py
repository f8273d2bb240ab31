"""Persistence, notification and cache-invalidation collaborators."""

from flowpatch.services.base import (
    AgentService,
    CacheInvalidator,
    DataStoreNodeService,
    EntityService,
    FlowService,
    IfNodeService,
    Notifier,
    ServiceBundle,
    ServiceResult,
)
from flowpatch.services.memory import (
    InMemoryBackend,
    RecordingInvalidator,
    RecordingNotifier,
)

__all__ = [
    "AgentService",
    "CacheInvalidator",
    "DataStoreNodeService",
    "EntityService",
    "FlowService",
    "IfNodeService",
    "InMemoryBackend",
    "Notifier",
    "RecordingInvalidator",
    "RecordingNotifier",
    "ServiceBundle",
    "ServiceResult",
]
