from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from dropdeck.schemas.delivery import DeliveryStatus, DriverLocation, UnifiedDelivery, UtcDatetime, WireModel, status_label
from dropdeck.schemas.platform import Platform, PlatformConnectionStatus
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

EventType = Literal[
    "delivery_update",
    "location_update",
    "connection_status",
    "system_status",
]

SystemStatusKind = Literal["maintenance", "outage", "info", "recovery"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(WireModel):
    type: EventType
    # when the producer observed the change; authoritative for ordering,
    # arrival order on the transport is not
    timestamp: UtcDatetime


class DeliveryUpdatePayload(WireModel):
    delivery_id: str = Field(..., min_length=1)
    platform: Platform
    status: DeliveryStatus
    status_label: str = Field(..., min_length=1)
    eta: Optional[int] = Field(None, ge=0)  # minutes
    previous_status: Optional[DeliveryStatus] = None
    is_complete: Optional[bool] = None
    delivery: Optional[UnifiedDelivery] = None


class DeliveryUpdateEvent(BaseEvent):
    type: Literal["delivery_update"] = "delivery_update"
    payload: DeliveryUpdatePayload


class LocationUpdatePayload(WireModel):
    delivery_id: str = Field(..., min_length=1)
    platform: Platform
    location: DriverLocation


class LocationUpdateEvent(BaseEvent):
    type: Literal["location_update"] = "location_update"
    payload: LocationUpdatePayload


class ConnectionStatusPayload(WireModel):
    platform: Platform
    status: PlatformConnectionStatus
    message: Optional[str] = None
    expires_at: Optional[UtcDatetime] = None


class ConnectionStatusEvent(BaseEvent):
    type: Literal["connection_status"] = "connection_status"
    payload: ConnectionStatusPayload


class SystemStatusPayload(WireModel):
    type: SystemStatusKind
    message: str = Field(..., min_length=1)
    affected_platforms: Optional[List[Platform]] = None
    start_time: Optional[UtcDatetime] = None
    estimated_end_time: Optional[UtcDatetime] = None


class SystemStatusEvent(BaseEvent):
    type: Literal["system_status"] = "system_status"
    payload: SystemStatusPayload


RealtimeEvent = Annotated[
    Union[DeliveryUpdateEvent, LocationUpdateEvent, ConnectionStatusEvent, SystemStatusEvent],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(RealtimeEvent)


def validate_event(raw: Any):
    """Validate ``raw`` into a RealtimeEvent, raising pydantic's ValidationError."""
    if isinstance(raw, (str, bytes, bytearray)):
        return _event_adapter.validate_json(raw)
    return _event_adapter.validate_python(raw)


def parse_event(raw: Any):
    """Return the typed event for ``raw`` or None when it is malformed or unknown.

    Dropping instead of raising keeps consumers on their last-known-good state
    when a producer sends something this build does not understand.
    """
    try:
        return validate_event(raw)
    except (ValidationError, ValueError, TypeError) as exc:
        kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
        logger.debug("ignoring malformed realtime event (type=%s): %s", kind, exc)
        return None


def create_delivery_update_event(
    delivery_id: str,
    platform: Platform | str,
    status: DeliveryStatus | str,
    label: Optional[str] = None,
    *,
    eta: Optional[int] = None,
    previous_status: Optional[DeliveryStatus | str] = None,
    is_complete: Optional[bool] = None,
    delivery: Optional[UnifiedDelivery] = None,
    timestamp: Optional[datetime] = None,
) -> DeliveryUpdateEvent:
    return DeliveryUpdateEvent(
        timestamp=timestamp or _utcnow(),
        payload=DeliveryUpdatePayload(
            delivery_id=delivery_id,
            platform=platform,
            status=status,
            status_label=label or status_label(status),
            eta=eta,
            previous_status=previous_status,
            is_complete=is_complete,
            delivery=delivery,
        ),
    )


def create_location_update_event(
    delivery_id: str,
    platform: Platform | str,
    location: DriverLocation,
    *,
    timestamp: Optional[datetime] = None,
) -> LocationUpdateEvent:
    return LocationUpdateEvent(
        timestamp=timestamp or _utcnow(),
        payload=LocationUpdatePayload(delivery_id=delivery_id, platform=platform, location=location),
    )


def create_connection_status_event(
    platform: Platform | str,
    status: PlatformConnectionStatus | str,
    *,
    message: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    timestamp: Optional[datetime] = None,
) -> ConnectionStatusEvent:
    return ConnectionStatusEvent(
        timestamp=timestamp or _utcnow(),
        payload=ConnectionStatusPayload(platform=platform, status=status, message=message, expires_at=expires_at),
    )


def create_system_status_event(
    kind: SystemStatusKind,
    message: str,
    *,
    affected_platforms: Optional[List[Platform | str]] = None,
    start_time: Optional[datetime] = None,
    estimated_end_time: Optional[datetime] = None,
    timestamp: Optional[datetime] = None,
) -> SystemStatusEvent:
    return SystemStatusEvent(
        timestamp=timestamp or _utcnow(),
        payload=SystemStatusPayload(
            type=kind,
            message=message,
            affected_platforms=affected_platforms,
            start_time=start_time,
            estimated_end_time=estimated_end_time,
        ),
    )


# pub/sub channel names, keyed the same way producers publish them
def user_deliveries_channel(user_id: str) -> str:
    return f"user:{user_id}:deliveries"


def user_connections_channel(user_id: str) -> str:
    return f"user:{user_id}:connections"


def delivery_location_channel(delivery_id: str) -> str:
    return f"delivery:{delivery_id}:location"


def event_to_json(event) -> str:
    return json.dumps(event.to_wire())
