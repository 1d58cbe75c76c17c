from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional

from dropdeck.bus.bus import EventBus, Subscription
from dropdeck.connectivity.monitor import ConnectivityMonitor
from dropdeck.errors import ChannelClosedError
from dropdeck.notifications.preferences import PreferencesManager, should_notify
from dropdeck.notifications.reconciler import NotificationReconciler, notification_from_event
from dropdeck.schemas.delivery import UnifiedDelivery
from dropdeck.schemas.events import (
    ConnectionStatusEvent,
    DeliveryUpdateEvent,
    SystemStatusEvent,
    parse_event,
    user_connections_channel,
    user_deliveries_channel,
)
from dropdeck.tracking.store import DeliveryTracker
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DashboardSession:
    """Per-user consumer that folds realtime events into local state.

    Each session owns its tracker, notification list and (optionally) a
    connectivity monitor; nothing is shared with other sessions except the
    bus. Messages are handled in arrival order, while the tracker uses event
    timestamps to decide whether a message is still current. A notification
    is raised only for delivery updates the tracker actually applied, so
    redelivered or out-of-order messages never notify twice.
    """

    def __init__(
        self,
        user_id: str,
        bus: EventBus,
        *,
        tracker: Optional[DeliveryTracker] = None,
        notifications: Optional[NotificationReconciler] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        preferences: Optional[PreferencesManager] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.user_id = user_id
        self.bus = bus
        self.tracker = tracker or DeliveryTracker()
        self.notifications = notifications or NotificationReconciler()
        self.monitor = monitor
        self.preferences = preferences
        self.now = now
        self.ignored = 0
        self._subs: List[Subscription] = []

    @property
    def channels(self) -> List[str]:
        return [user_deliveries_channel(self.user_id), user_connections_channel(self.user_id)]

    @property
    def is_open(self) -> bool:
        return bool(self._subs)

    def open(self) -> "DashboardSession":
        if not self._subs:
            self._subs = [self.bus.subscribe(name) for name in self.channels]
            logger.info("session for %s subscribed to %s", self.user_id, ", ".join(self.channels))
        return self

    def hydrate(self, deliveries: Iterable[UnifiedDelivery | dict]) -> int:
        return self.tracker.hydrate(deliveries)

    def _notify(self, event) -> None:
        n = notification_from_event(event)
        if n is None:
            return
        if self.preferences is not None:
            platform = n.data.platform if n.data is not None else None
            if not should_notify(self.preferences.preferences, n.type, platform, self.now()):
                logger.debug("notification %s suppressed by preferences", n.type)
                return
        self.notifications.add_notification(n)

    def handle_message(self, raw: Any):
        """Apply one wire message. Returns the typed event, or None if it was ignored."""
        event = parse_event(raw)
        if event is None:
            self.ignored += 1
            return None
        applied = self.tracker.apply(event)
        if applied and isinstance(event, ConnectionStatusEvent) and self.monitor is not None:
            self.monitor.apply_connection_event(event)
        if applied and isinstance(event, (DeliveryUpdateEvent, SystemStatusEvent)):
            self._notify(event)
        return event

    def drain(self) -> int:
        """Handle every message already queued, without waiting. Returns the count."""
        handled = 0
        for sub in self._subs:
            while True:
                try:
                    item = sub.get_nowait()
                except asyncio.QueueEmpty:
                    break
                self.handle_message(item)
                handled += 1
        return handled

    async def _pump(self, sub: Subscription) -> None:
        while True:
            try:
                item = await sub.get()
            except ChannelClosedError:
                return
            self.handle_message(item)

    async def run(self) -> None:
        """Consume until cancelled or every subscription is closed."""
        self.open()
        try:
            await asyncio.gather(*(self._pump(s) for s in self._subs))
        except asyncio.CancelledError:
            logger.debug("session for %s cancelled", self.user_id)
            raise

    def close(self) -> None:
        for s in self._subs:
            s.close()
        self._subs = []
        if self.monitor is not None:
            self.monitor.close()

    def __enter__(self) -> "DashboardSession":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
