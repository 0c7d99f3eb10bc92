"""
In-process change-notification bus.

The cache announces changed keys through an event channel shared by the whole
process. Clients subscribe their dispatcher on start and unsubscribe on close.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Union

from loguru import logger

from .models import ChangeNotification


class UpdateSubscriber(Protocol):
    """Async callable accepting a ChangeNotification.

    Exceptions are caught and logged so one subscriber cannot starve others.
    """

    async def __call__(self, notification: ChangeNotification) -> None: ...


class UpdateEventBus:
    """Pub/sub bus for change notifications.

    Example:
        bus = UpdateEventBus()
        bus.subscribe(dispatcher.handle_notification)
        await bus.publish({"v": 1, "topic": "t", "offsets": {"0": 5}, "updates": {"k": {}}})
    """

    def __init__(self) -> None:
        self._subs: list[UpdateSubscriber] = []

    def subscribe(self, callback: UpdateSubscriber) -> None:
        if callback not in self._subs:
            self._subs.append(callback)
            logger.debug(f"Update subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: UpdateSubscriber) -> None:
        """Remove a subscriber. No-op if it was never subscribed."""
        try:
            self._subs.remove(callback)
            logger.debug(f"Update subscriber removed (total: {len(self._subs)})")
        except ValueError:
            pass

    async def publish(self, event: Union[ChangeNotification, Mapping[str, Any]]) -> None:
        """Validate ``event`` and deliver it to all subscribers in registration order."""
        if not self._subs:
            return
        notification = (
            event
            if isinstance(event, ChangeNotification)
            else ChangeNotification.model_validate(event)
        )
        # Copy so subscribers may unsubscribe while being called
        for callback in list(self._subs):
            try:
                await callback(notification)
            except Exception as exc:
                logger.warning(f"Update subscriber error (ignored): {type(exc).__name__}: {exc}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)


# --- Singleton accessor for in-process use ---

_bus: Optional[UpdateEventBus] = None


def update_events() -> UpdateEventBus:
    """Get the process-wide UpdateEventBus."""
    global _bus
    if _bus is None:
        _bus = UpdateEventBus()
        logger.debug("UpdateEventBus singleton initialized")
    return _bus
