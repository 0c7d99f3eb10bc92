"""
Debounced fan-out of change notifications.

Per key the dispatcher is either Idle or Pending. The first notification for
an Idle key arms a timer; further notifications while Pending are absorbed.
When the timer fires the key goes back to Idle, the current value is read
once, and every handler gets ``(key, value)``. The value is whatever the read
returns at fire time, which may already include later updates.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Set

from loguru import logger

from .events import UpdateEventBus
from .models import SUPPORTED_NOTIFICATION_VERSION, ChangeNotification
from .offsets import OffsetTracker

UpdateHandler = Callable[[str, Any], Any]
Fetch = Callable[[str], Awaitable[Any]]

DEFAULT_DEBOUNCE_MS = 10


class UpdateDispatcher:
    """Coalesces bursts of change notifications into one read and one handler round per key."""

    def __init__(
        self,
        *,
        topic: str,
        fetch: Fetch,
        tracker: OffsetTracker,
        bus: UpdateEventBus,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ):
        self._topic = topic
        self._fetch = fetch
        self._tracker = tracker
        self._bus = bus
        self._debounce_s = debounce_ms / 1000.0
        self._handlers: list[UpdateHandler] = []
        self._pending: Dict[str, asyncio.TimerHandle] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._started = False

    # ---------- lifecycle ----------

    def start(self) -> None:
        if self._started:
            return
        self._bus.subscribe(self.handle_notification)
        self._started = True

    def stop(self) -> None:
        """Unsubscribe and drop bursts that have not fired yet."""
        if not self._started:
            return
        self._bus.unsubscribe(self.handle_notification)
        for handle in self._pending.values():
            handle.cancel()
        if self._pending:
            logger.debug(f"Dropped {len(self._pending)} pending updates on stop topic={self._topic}")
        self._pending.clear()
        self._started = False

    async def drain(self) -> None:
        """Wait for resolutions that already fired."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ---------- public API ----------

    def on_update(self, handler: UpdateHandler) -> None:
        self._handlers.append(handler)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def handle_notification(self, notification: ChangeNotification) -> None:
        if notification.topic != self._topic:
            return
        if notification.v != SUPPORTED_NOTIFICATION_VERSION:
            logger.warning(
                f"Ignoring update notification with unsupported version v={notification.v} "
                f"topic={notification.topic}"
            )
            return

        self._tracker.update_partition_offset_metrics(notification.offsets)

        loop = asyncio.get_running_loop()
        for key in notification.changed_keys:
            if key in self._pending:
                continue
            self._pending[key] = loop.call_later(self._debounce_s, self._fire, key)

    # ---------- internals ----------

    def _fire(self, key: str) -> None:
        self._pending.pop(key, None)
        task = asyncio.ensure_future(self._resolve(key, list(self._handlers)))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _resolve(self, key: str, handlers: list[UpdateHandler]) -> None:
        try:
            value = await self._fetch(key)
        except Exception as exc:
            logger.opt(exception=exc).error(
                f"Failed to read updated value key={key} topic={self._topic}"
            )
            return

        for handler in handlers:
            try:
                result = handler(key, value)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.opt(exception=exc).warning(
                    f"Update handler error (ignored) key={key} topic={self._topic}"
                )
