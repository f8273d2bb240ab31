"""Write-ahead log of node-creation intents.

Creating a process node spans two stores: the backing entity (remote) and
the node list (local resource). The intent log records each creation before
the remote call so a crash or failed rollback leaves a trace:

- ``pending``: recorded, remote entity may or may not exist yet
- ``committed``: entity created and node added to the resource
- ``compensated``: creation failed and the entity was deleted again
- ``orphaned``: creation failed and the compensating delete failed too

With a ``path`` the log appends one JSON object per transition. Loading
replays the file, keeps the latest state per intent, then compacts the file
down to the intents that are still unresolved.
:meth:`IntentLog.reconcile_orphans` is meant to run at startup, before any
new creation starts.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING, Any

from flowpatch.models import new_id, utc_now_iso
from flowpatch.observability.logging import get_logger

if TYPE_CHECKING:
    from flowpatch.services.base import ServiceBundle

log = get_logger(__name__)


class IntentState(StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    COMPENSATED = "compensated"
    ORPHANED = "orphaned"


UNRESOLVED_STATES = frozenset({IntentState.PENDING, IntentState.ORPHANED})


@dataclass
class CreationIntent:
    """One recorded node creation."""

    flow_id: str
    node_id: str
    node_type: str
    intent_id: str = field(default_factory=new_id)
    state: IntentState = IntentState.PENDING
    updated_at: str = field(default_factory=utc_now_iso)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = str(self.state)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CreationIntent:
        return cls(
            flow_id=data["flow_id"],
            node_id=data["node_id"],
            node_type=data["node_type"],
            intent_id=data["intent_id"],
            state=IntentState(data["state"]),
            updated_at=data.get("updated_at", ""),
            error=data.get("error"),
        )


class IntentLog:
    """In-memory intent log with optional JSONL persistence.

    Args:
        path: File to append transitions to. None keeps the log in memory.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._intents: dict[str, CreationIntent] = {}

    @classmethod
    def load(cls, path: Path) -> IntentLog:
        """Replay *path* into a new log that keeps appending to it.

        Malformed lines are skipped with a warning. The replayed log is
        compacted, so the file only carries unresolved intents afterwards.
        """
        intent_log = cls(path)
        if not path.exists():
            return intent_log
        with path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    intent = CreationIntent.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError) as e:
                    log.warning(
                        "intent_log_line_skipped", path=str(path), line=lineno, error=str(e)
                    )
                    continue
                intent_log._intents[intent.intent_id] = intent
        log.debug("intent_log_loaded", path=str(path), intents=len(intent_log._intents))
        intent_log.compact()
        return intent_log

    # -- Transitions -----------------------------------------------------------

    def begin(self, flow_id: str, node_id: str, node_type: str) -> CreationIntent:
        """Record a pending creation before the remote call."""
        intent = CreationIntent(flow_id=flow_id, node_id=node_id, node_type=node_type)
        self._intents[intent.intent_id] = intent
        self._append(intent)
        return intent

    def commit(self, intent: CreationIntent) -> None:
        self._transition(intent, IntentState.COMMITTED)

    def compensate(self, intent: CreationIntent, error: str | None = None) -> None:
        self._transition(intent, IntentState.COMPENSATED, error)

    def orphan(self, intent: CreationIntent, error: str) -> None:
        self._transition(intent, IntentState.ORPHANED, error)

    def _transition(
        self, intent: CreationIntent, state: IntentState, error: str | None = None
    ) -> None:
        intent.state = state
        intent.updated_at = utc_now_iso()
        if error is not None:
            intent.error = error
        self._intents[intent.intent_id] = intent
        self._append(intent)

    def _append(self, intent: CreationIntent) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(intent.to_dict()) + "\n")

    def compact(self) -> int:
        """Forget committed and compensated intents and rewrite the file without them.

        The file is replaced through a temporary sibling, never truncated in place.

        Returns:
            Number of intents dropped.
        """
        resolved = [k for k, i in self._intents.items() if i.state not in UNRESOLVED_STATES]
        for intent_id in resolved:
            del self._intents[intent_id]
        if self._path is not None and self._path.exists():
            tmp = self._path.with_name(self._path.name + ".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                for intent in self._intents.values():
                    f.write(json.dumps(intent.to_dict()) + "\n")
            tmp.replace(self._path)
        if resolved:
            log.info("intent_log_compacted", dropped=len(resolved), kept=len(self._intents))
        return len(resolved)

    # -- Queries ---------------------------------------------------------------

    def get(self, intent_id: str) -> CreationIntent | None:
        return self._intents.get(intent_id)

    def all(self) -> list[CreationIntent]:
        return list(self._intents.values())

    def unresolved(self) -> list[CreationIntent]:
        """Intents left pending or orphaned."""
        return [i for i in self._intents.values() if i.state in UNRESOLVED_STATES]

    def __len__(self) -> int:
        return len(self._intents)

    # -- Recovery --------------------------------------------------------------

    async def reconcile_orphans(self, services: ServiceBundle) -> list[CreationIntent]:
        """Replay the compensating delete for every unresolved intent.

        Returns:
            Intents that were compensated by this call. Intents whose delete
            fails again stay ``orphaned``.
        """
        compensated: list[CreationIntent] = []
        for intent in self.unresolved():
            service = services.entity_service(intent.node_type)
            if service is None:
                self.compensate(intent)
                compensated.append(intent)
                continue
            result = await service.delete(intent.node_id)
            if result.success:
                self.compensate(intent)
                compensated.append(intent)
                log.info("orphan_compensated", node_id=intent.node_id, flow_id=intent.flow_id)
            else:
                self.orphan(intent, result.error or "delete failed")
                log.error(
                    "orphan_compensation_failed",
                    node_id=intent.node_id,
                    flow_id=intent.flow_id,
                    error=result.error,
                )
        return compensated
