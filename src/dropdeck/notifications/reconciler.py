from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Literal, Optional

from pydantic import Field

from dropdeck.schemas.delivery import DeliveryStatus, UtcDatetime, WireModel
from dropdeck.schemas.events import DeliveryUpdateEvent, SystemStatusEvent
from dropdeck.schemas.platform import platform_display_name
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

DEFAULT_CAPACITY = 50

NotificationType = Literal[
    "delivery_status_change",
    "driver_assigned",
    "out_for_delivery",
    "arriving_soon",
    "delivered",
    "delay_detected",
    "platform_connected",
    "platform_disconnected",
    "system_status",
]

_TYPE_BY_STATUS: Dict[DeliveryStatus, str] = {
    DeliveryStatus.DRIVER_ASSIGNED: "driver_assigned",
    DeliveryStatus.OUT_FOR_DELIVERY: "out_for_delivery",
    DeliveryStatus.ARRIVING: "arriving_soon",
    DeliveryStatus.DELIVERED: "delivered",
    DeliveryStatus.DELAYED: "delay_detected",
}

_SYSTEM_TITLES = {
    "maintenance": "Scheduled Maintenance",
    "outage": "Service Disruption",
    "info": "Service Update",
    "recovery": "Service Restored",
}


class NotificationData(WireModel):
    delivery_id: Optional[str] = None
    platform: Optional[str] = None
    status: Optional[str] = None
    action_url: Optional[str] = None


class Notification(WireModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: NotificationType
    title: str
    body: str
    data: Optional[NotificationData] = None
    read: bool = False
    created_at: UtcDatetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def notification_type_for_status(status: DeliveryStatus) -> str:
    return _TYPE_BY_STATUS.get(status, "delivery_status_change")


def _delivery_content(event: DeliveryUpdateEvent) -> tuple[str, str]:
    p = event.payload
    name = platform_display_name(p.platform)
    eta = p.eta
    if eta is None and p.delivery is not None:
        eta = p.delivery.eta.minutes_remaining
    driver = None
    if p.delivery is not None and p.delivery.driver is not None:
        driver = p.delivery.driver.name

    if p.status == DeliveryStatus.DRIVER_ASSIGNED:
        return "Driver Assigned", f"{driver or 'Your driver'} is picking up your {name} order"
    if p.status == DeliveryStatus.OUT_FOR_DELIVERY:
        suffix = f" - arriving in ~{eta} min" if eta is not None else ""
        return "On the Way", f"Your {name} order is out for delivery{suffix}"
    if p.status == DeliveryStatus.ARRIVING:
        if eta is not None:
            return "Almost There!", f"Your {name} order arrives in {eta} minutes"
        return "Almost There!", f"Your {name} order is arriving"
    if p.status == DeliveryStatus.DELIVERED:
        return "Delivered", f"Your {name} order has been delivered"
    if p.status == DeliveryStatus.DELAYED:
        suffix = f" - new ETA: {eta} min" if eta is not None else ""
        return "Delivery Delayed", f"Your {name} order is running late{suffix}"
    if p.status == DeliveryStatus.CANCELLED:
        return "Order Cancelled", f"Your {name} order has been cancelled"
    return "Delivery Update", f"Your {name} order status: {p.status_label}"


def notification_from_event(event) -> Optional[Notification]:
    """Build the in-app notification for a realtime event.

    Only delivery_update and system_status produce notifications; location and
    connection events update state elsewhere and return None here.
    """
    if isinstance(event, DeliveryUpdateEvent):
        title, body = _delivery_content(event)
        p = event.payload
        return Notification(
            type=notification_type_for_status(p.status),
            title=title,
            body=body,
            data=NotificationData(
                delivery_id=p.delivery_id,
                platform=p.platform.value,
                status=p.status.value,
                action_url=f"/delivery/{p.delivery_id}",
            ),
            created_at=event.timestamp,
        )
    if isinstance(event, SystemStatusEvent):
        p = event.payload
        body = p.message
        if p.affected_platforms:
            names = ", ".join(platform_display_name(x) for x in p.affected_platforms)
            body = f"{body} (affects {names})"
        return Notification(type="system_status", title=_SYSTEM_TITLES[p.type], body=body, created_at=event.timestamp)
    return None


class NotificationReconciler:
    """Bounded, most-recent-first notification list with an unread counter.

    Every mutation is synchronous. Re-applying an already applied change (the
    same id added twice, marking a read item read) leaves state untouched, so
    redelivered transport messages are harmless. ``unread_count`` always equals
    the number of unread items actually held.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, on_notification: Optional[Callable[[Notification], None]] = None):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self.on_notification = on_notification
        self._items: List[Notification] = []
        self._unread = 0

    @property
    def notifications(self) -> List[Notification]:
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return self._unread

    def __len__(self) -> int:
        return len(self._items)

    def get(self, notification_id: str) -> Optional[Notification]:
        for n in self._items:
            if n.id == notification_id:
                return n
        return None

    def add_notification(self, notification: Notification) -> bool:
        """Insert at the head. Returns False if the id is already present."""
        if self.get(notification.id) is not None:
            logger.debug("duplicate notification %s ignored", notification.id)
            return False
        self._items.insert(0, notification)
        if not notification.read:
            self._unread += 1
        if len(self._items) > self.capacity:
            evicted = self._items[self.capacity:]
            del self._items[self.capacity:]
            self._unread -= sum(1 for n in evicted if not n.read)
            logger.debug("evicted %s oldest notification(s)", len(evicted))
        if self.on_notification is not None:
            self.on_notification(notification)
        logger.debug("new notification %s (%s) unread=%s", notification.id, notification.type, self._unread)
        return True

    def apply_event(self, event) -> Optional[Notification]:
        n = notification_from_event(event)
        if n is None:
            return None
        self.add_notification(n)
        return n

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read. Unknown ids and read items are no-ops."""
        for i, n in enumerate(self._items):
            if n.id != notification_id:
                continue
            if n.read:
                return False
            self._items[i] = n.model_copy(update={"read": True})
            self._unread = max(0, self._unread - 1)
            logger.debug("marked as read: %s", notification_id)
            return True
        return False

    def mark_all_as_read(self) -> None:
        self._items = [n if n.read else n.model_copy(update={"read": True}) for n in self._items]
        self._unread = 0

    def clear_all(self) -> None:
        self._items = []
        self._unread = 0
        logger.debug("cleared all notifications")
