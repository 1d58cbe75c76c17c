from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

from pydantic import ValidationError

from dropdeck.schemas.delivery import DeliveryStatus, TERMINAL_STATUSES, UnifiedDelivery, as_utc
from dropdeck.schemas.events import (
    ConnectionStatusEvent,
    DeliveryUpdateEvent,
    LocationUpdateEvent,
    SystemStatusEvent,
)
from dropdeck.schemas.platform import Platform, PlatformConnectionStatus
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

SortBy = Literal["eta", "status", "platform", "order_time"]

STATUS_PRIORITY: Dict[DeliveryStatus, int] = {
    DeliveryStatus.ARRIVING: 0,
    DeliveryStatus.OUT_FOR_DELIVERY: 1,
    DeliveryStatus.DRIVER_AT_STORE: 2,
    DeliveryStatus.DRIVER_HEADING_TO_STORE: 3,
    DeliveryStatus.DRIVER_ASSIGNED: 4,
    DeliveryStatus.READY_FOR_PICKUP: 5,
    DeliveryStatus.PREPARING: 6,
    DeliveryStatus.DELAYED: 7,
    DeliveryStatus.DELIVERED: 8,
    DeliveryStatus.CANCELLED: 9,
}

ACTIVE_STATUSES = frozenset(set(DeliveryStatus) - TERMINAL_STATUSES)
ARRIVING_SOON_MINUTES = 15


class DeliveryTracker:
    """Client-side view of a user's deliveries.

    Hydrated once from the REST listing, then kept current by realtime
    events. Several producers feed the same stream and the transport may
    reorder messages, so every event is checked against the newest timestamp
    already applied for the same key (delivery status, driver location,
    platform connection). Older events are dropped and the current record
    stays as it was.
    """

    def __init__(self):
        self._deliveries: "OrderedDict[str, UnifiedDelivery]" = OrderedDict()
        self._status_at: Dict[str, datetime] = {}
        self._location_at: Dict[str, datetime] = {}
        self._platform_at: Dict[Platform, datetime] = {}
        self.platform_connections: Dict[Platform, PlatformConnectionStatus] = {}
        self.system_status: Optional[SystemStatusEvent] = None
        self.last_updated_at: Optional[datetime] = None

    # -- hydration -----------------------------------------------------------

    def hydrate(self, deliveries: Iterable[UnifiedDelivery | Dict[str, Any]]) -> int:
        """Replace state with ``deliveries``. Entries that fail validation are skipped."""
        fresh: "OrderedDict[str, UnifiedDelivery]" = OrderedDict()
        for raw in deliveries:
            if isinstance(raw, UnifiedDelivery):
                d = raw
            else:
                try:
                    d = UnifiedDelivery.model_validate(raw)
                except ValidationError as exc:
                    logger.debug("skipping invalid delivery during hydration: %s", exc)
                    continue
            fresh[d.id] = d
        self._deliveries = fresh
        self._status_at = {d.id: d.status_updated_at for d in fresh.values()}
        self._location_at = {
            d.id: d.driver.location.timestamp for d in fresh.values() if d.driver is not None and d.driver.location is not None
        }
        logger.info("hydrated %s deliveries", len(fresh))
        return len(fresh)

    # -- accessors -----------------------------------------------------------

    def get(self, delivery_id: str) -> Optional[UnifiedDelivery]:
        return self._deliveries.get(delivery_id)

    @property
    def deliveries(self) -> List[UnifiedDelivery]:
        return list(self._deliveries.values())

    def __len__(self) -> int:
        return len(self._deliveries)

    def __contains__(self, delivery_id: object) -> bool:
        return delivery_id in self._deliveries

    def upsert(self, delivery: UnifiedDelivery) -> None:
        self._deliveries[delivery.id] = delivery
        self._status_at[delivery.id] = max(delivery.status_updated_at, self._status_at.get(delivery.id, delivery.status_updated_at))
        if delivery.driver is not None and delivery.driver.location is not None:
            fix_at = delivery.driver.location.timestamp
            self._location_at[delivery.id] = max(fix_at, self._location_at.get(delivery.id, fix_at))

    def remove(self, delivery_id: str) -> bool:
        self._status_at.pop(delivery_id, None)
        self._location_at.pop(delivery_id, None)
        return self._deliveries.pop(delivery_id, None) is not None

    # -- event application ---------------------------------------------------

    def apply(self, event) -> bool:
        """Merge one realtime event. Returns True if state changed."""
        if isinstance(event, DeliveryUpdateEvent):
            changed = self._apply_delivery_update(event)
        elif isinstance(event, LocationUpdateEvent):
            changed = self._apply_location_update(event)
        elif isinstance(event, ConnectionStatusEvent):
            changed = self._apply_connection_status(event)
        elif isinstance(event, SystemStatusEvent):
            changed = self._apply_system_status(event)
        else:
            logger.debug("tracker ignoring unsupported event %r", type(event).__name__)
            return False
        if changed:
            self.last_updated_at = event.timestamp
        return changed

    @staticmethod
    def _is_stale(seen: Optional[datetime], ts: datetime) -> bool:
        return seen is not None and ts < seen

    def _apply_delivery_update(self, event: DeliveryUpdateEvent) -> bool:
        p = event.payload
        if self._is_stale(self._status_at.get(p.delivery_id), event.timestamp):
            logger.debug("stale delivery_update for %s at %s dropped", p.delivery_id, event.timestamp.isoformat())
            return False

        if p.delivery is not None and p.delivery.id != p.delivery_id:
            logger.debug("delivery_update for %s carries a snapshot of %s, dropped", p.delivery_id, p.delivery.id)
            return False
        base = p.delivery if p.delivery is not None else self._deliveries.get(p.delivery_id)
        if base is None:
            logger.debug("delivery_update for unknown delivery %s without a snapshot dropped", p.delivery_id)
            return False

        updated = base.with_status(p.status, at=event.timestamp, label=p.status_label)
        if p.eta is not None:
            updated = updated.with_eta(event.timestamp + timedelta(minutes=p.eta), as_of=event.timestamp)
        self._deliveries[p.delivery_id] = updated
        self._status_at[p.delivery_id] = event.timestamp
        return True

    def _apply_location_update(self, event: LocationUpdateEvent) -> bool:
        p = event.payload
        current = self._deliveries.get(p.delivery_id)
        if current is None:
            return False
        if self._is_stale(self._location_at.get(p.delivery_id), p.location.timestamp):
            logger.debug("stale location for %s dropped", p.delivery_id)
            return False
        self._deliveries[p.delivery_id] = current.with_driver_location(p.location)
        self._location_at[p.delivery_id] = p.location.timestamp
        return True

    def _apply_connection_status(self, event: ConnectionStatusEvent) -> bool:
        p = event.payload
        if self._is_stale(self._platform_at.get(p.platform), event.timestamp):
            return False
        self._platform_at[p.platform] = event.timestamp
        self.platform_connections[p.platform] = p.status
        return True

    def _apply_system_status(self, event: SystemStatusEvent) -> bool:
        if self.system_status is not None and event.timestamp < self.system_status.timestamp:
            return False
        self.system_status = event
        return True

    # -- views ---------------------------------------------------------------

    def filtered(
        self,
        platforms: Sequence[Platform | str] = (),
        statuses: Sequence[DeliveryStatus | str] = (),
        search: str = "",
    ) -> List[UnifiedDelivery]:
        out = self.deliveries
        if platforms:
            wanted = {Platform(p) for p in platforms}
            out = [d for d in out if d.platform in wanted]
        if statuses:
            wanted_s = {DeliveryStatus(s) for s in statuses}
            out = [d for d in out if d.status in wanted_s]
        query = search.strip().lower()
        if query:
            out = [d for d in out if _matches_query(d, query)]
        return out

    def sorted(
        self,
        by: SortBy = "eta",
        descending: bool = False,
        deliveries: Optional[Iterable[UnifiedDelivery]] = None,
    ) -> List[UnifiedDelivery]:
        items = list(self._deliveries.values() if deliveries is None else deliveries)
        if by == "eta":
            key = lambda d: d.eta.minutes_remaining  # noqa: E731
        elif by == "status":
            key = lambda d: STATUS_PRIORITY.get(d.status, 10)  # noqa: E731
        elif by == "platform":
            key = lambda d: d.platform.value  # noqa: E731
        elif by == "order_time":
            key = lambda d: d.timestamps.ordered  # noqa: E731
        else:
            raise ValueError(f"unknown sort key {by!r}")
        # sorted() is stable, ties keep hydration/arrival order
        return sorted(items, key=key, reverse=descending)

    def active_count(self) -> int:
        return sum(1 for d in self._deliveries.values() if d.status in ACTIVE_STATUSES)

    def arriving_soon_count(self, within_minutes: int = ARRIVING_SOON_MINUTES) -> int:
        return sum(
            1 for d in self._deliveries.values() if d.status in ACTIVE_STATUSES and d.eta.minutes_remaining <= within_minutes
        )

    def delivered_today_count(self, now: datetime) -> int:
        start = as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        return sum(
            1
            for d in self._deliveries.values()
            if d.status == DeliveryStatus.DELIVERED and d.timestamps.delivered is not None and d.timestamps.delivered >= start
        )

    def stats(self, now: datetime) -> Dict[str, int]:
        return {
            "active": self.active_count(),
            "arriving_soon": self.arriving_soon_count(),
            "delivered_today": self.delivered_today_count(now),
            "total": len(self._deliveries),
        }


def _matches_query(d: UnifiedDelivery, query: str) -> bool:
    fields = [d.external_order_id, d.status_label, d.destination.address, d.platform.value]
    if d.driver is not None and d.driver.name:
        fields.append(d.driver.name)
    return any(query in f.lower() for f in fields)
