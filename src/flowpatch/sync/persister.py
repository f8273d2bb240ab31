"""Debounced persistence of layout-only changes.

Viewport (camera) changes arrive on every scroll or zoom tick and are
coalesced: only the last viewport inside the debounce window is written.
Node drags are written once, on release, as position-only updates so a
concurrent content update of the same node is never overwritten.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from flowpatch.config import DEFAULT_VIEWPORT_DEBOUNCE_MS
from flowpatch.observability.logging import get_logger

if TYPE_CHECKING:
    from flowpatch.services.base import FlowService

log = get_logger(__name__)


class LayoutPersister:
    """Writes viewport and node positions for one flow.

    Args:
        flows: Flow persistence service.
        flow_id: Flow to write to.
        debounce_ms: Viewport coalescing window.
    """

    def __init__(
        self,
        flows: FlowService,
        flow_id: str,
        *,
        debounce_ms: int = DEFAULT_VIEWPORT_DEBOUNCE_MS,
    ) -> None:
        self._flows = flows
        self._flow_id = flow_id
        self._delay = debounce_ms / 1000
        self._pending: dict[str, Any] | None = None
        self._timer: asyncio.Task[None] | None = None
        self.writes = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule_viewport(self, viewport: dict[str, Any]) -> None:
        """Queue *viewport*, restarting the debounce window.

        Must be called from a running event loop.
        """
        self._pending = dict(viewport)
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._write_after_delay())

    async def flush(self) -> bool:
        """Write the pending viewport now. Returns False if nothing was pending."""
        self._cancel_timer()
        return await self._write_pending()

    def cancel(self) -> None:
        """Drop the pending viewport without writing it."""
        self._cancel_timer()
        self._pending = None

    async def on_drag_stop(self, nodes: list[dict[str, Any]]) -> bool:
        """Write the positions of the dragged *nodes*, and nothing else.

        Returns:
            Whether the write succeeded. Failures are logged, not raised:
            the next drag or content save carries the positions again.
        """
        positions = [
            {"id": n["id"], "position": dict(n["position"])}
            for n in nodes
            if n.get("id") and isinstance(n.get("position"), dict)
        ]
        if not positions:
            return False
        result = await self._flows.update_node_positions(self._flow_id, positions)
        if not result.success:
            log.warning(
                "node_positions_write_failed", flow_id=self._flow_id, error=result.error
            )
            return False
        log.debug("node_positions_written", flow_id=self._flow_id, count=len(positions))
        return True

    async def _write_after_delay(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        await self._write_pending()

    async def _write_pending(self) -> bool:
        viewport, self._pending = self._pending, None
        if viewport is None:
            return False
        result = await self._flows.update_viewport(self._flow_id, viewport)
        self.writes += 1
        if not result.success:
            log.warning("viewport_write_failed", flow_id=self._flow_id, error=result.error)
            return False
        log.debug("viewport_written", flow_id=self._flow_id)
        return True

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
