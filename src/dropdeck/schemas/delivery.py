from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from dropdeck.schemas.platform import Platform
from dropdeck.utils.geo import mask_license_plate, mask_phone_number, minutes_until
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)


def as_utc(v: datetime) -> datetime:
    # adapters occasionally send naive timestamps; treat them as UTC so every
    # comparison in the core is between aware datetimes
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class WireModel(BaseModel):
    """Base for payloads exchanged with adapters and clients (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeliveryStatus(str, Enum):
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_HEADING_TO_STORE = "driver_heading_to_store"
    DRIVER_AT_STORE = "driver_at_store"
    OUT_FOR_DELIVERY = "out_for_delivery"
    ARRIVING = "arriving"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DELAYED = "delayed"


TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED})


class StatusConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: DeliveryStatus
    label: str
    color: str
    bg_color: str
    icon: str


_SLATE = ("#64748B", "rgba(100, 116, 139, 0.15)")
_CYAN = ("#06B6D4", "rgba(6, 182, 212, 0.15)")
_GREEN = ("#10B981", "rgba(16, 185, 129, 0.15)")
_RED = ("#EF4444", "rgba(239, 68, 68, 0.15)")
_AMBER = ("#F59E0B", "rgba(245, 158, 11, 0.15)")

STATUS_CONFIGS: Dict[DeliveryStatus, StatusConfig] = {
    s: StatusConfig(status=s, label=label, color=colors[0], bg_color=colors[1], icon=icon)
    for s, label, colors, icon in [
        (DeliveryStatus.PREPARING, "Preparing", _SLATE, "package"),
        (DeliveryStatus.READY_FOR_PICKUP, "Ready for Pickup", _SLATE, "clipboard-check"),
        (DeliveryStatus.DRIVER_ASSIGNED, "Driver Assigned", _CYAN, "user-check"),
        (DeliveryStatus.DRIVER_HEADING_TO_STORE, "Driver Heading to Store", _CYAN, "car"),
        (DeliveryStatus.DRIVER_AT_STORE, "Driver at Store", _CYAN, "store"),
        (DeliveryStatus.OUT_FOR_DELIVERY, "Out for Delivery", _CYAN, "truck"),
        (DeliveryStatus.ARRIVING, "Arriving", _CYAN, "map-pin"),
        (DeliveryStatus.DELIVERED, "Delivered", _GREEN, "package-check"),
        (DeliveryStatus.CANCELLED, "Cancelled", _RED, "x-circle"),
        (DeliveryStatus.DELAYED, "Delayed", _AMBER, "alert-triangle"),
    ]
}


def status_label(status: DeliveryStatus | str) -> str:
    return STATUS_CONFIGS[DeliveryStatus(status)].label


class DriverLocation(WireModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    heading: Optional[float] = Field(None, ge=0.0, le=360.0)
    speed: Optional[float] = Field(None, ge=0.0)  # km/h
    accuracy: Optional[float] = Field(None, ge=0.0)  # meters
    timestamp: UtcDatetime


class Vehicle(WireModel):
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    license_plate: Optional[str] = None

    @field_validator("license_plate")
    def _partial_plate(cls, v: Optional[str]):
        return mask_license_plate(v) if v else v


class DriverInfo(WireModel):
    name: Optional[str] = None  # first name only
    photo: Optional[str] = None
    phone: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0.0, le=5.0)
    vehicle: Optional[Vehicle] = None
    location: Optional[DriverLocation] = None

    @field_validator("name")
    def _first_name_only(cls, v: Optional[str]):
        if not v:
            return v
        return v.split()[0]

    @field_validator("phone")
    def _masked_phone(cls, v: Optional[str]):
        return mask_phone_number(v) if v else v


class Destination(WireModel):
    address: str
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    instructions: Optional[str] = None


class DistanceRemaining(WireModel):
    value: float = Field(..., ge=0.0)
    unit: Literal["miles", "km"] = "miles"


class DeliveryEta(WireModel):
    """ETA block. Frozen: ``minutes_remaining`` is always derived, never set by hand.

    ``as_of`` is the reference instant ``minutes_remaining`` was derived
    against; when absent the owning delivery's ``meta.last_fetched_at`` is used.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    estimated_arrival: UtcDatetime
    minutes_remaining: int = Field(0, ge=0)
    as_of: Optional[UtcDatetime] = None
    distance_remaining: Optional[DistanceRemaining] = None
    stops_remaining: Optional[int] = Field(None, ge=0)
    traffic_conditions: Optional[Literal["light", "moderate", "heavy"]] = None
    confidence: Literal["high", "medium", "low"] = "medium"


class OrderItem(WireModel):
    name: str
    quantity: int = Field(..., ge=0)
    unit_price: Optional[int] = Field(None, ge=0)  # cents
    image_url: Optional[str] = None
    substituted: Optional[bool] = None
    substituted_with: Optional[str] = None


class OrderSummary(WireModel):
    item_count: int = Field(..., ge=0)
    total_amount: Optional[int] = Field(None, ge=0)  # cents
    currency: Optional[str] = None
    items: Optional[List[OrderItem]] = None
    special_instructions: Optional[str] = None


class TrackingInfo(WireModel):
    url: Optional[str] = None
    map_available: bool = False
    live_updates: bool = False
    contact_driver_available: bool = False


class DeliveryTimestamps(WireModel):
    ordered: UtcDatetime
    confirmed: Optional[UtcDatetime] = None
    preparing: Optional[UtcDatetime] = None
    ready_for_pickup: Optional[UtcDatetime] = None
    driver_assigned: Optional[UtcDatetime] = None
    picked_up: Optional[UtcDatetime] = None
    out_for_delivery: Optional[UtcDatetime] = None
    arriving: Optional[UtcDatetime] = None
    delivered: Optional[UtcDatetime] = None
    cancelled: Optional[UtcDatetime] = None


FetchMethod = Literal["api", "webhook", "polling", "embedded"]


class FetchMeta(WireModel):
    last_fetched_at: UtcDatetime
    next_fetch_at: Optional[UtcDatetime] = None
    fetch_method: FetchMethod
    adapter_id: str = Field(..., min_length=1)
    raw_data: Optional[Any] = None


class UnifiedDelivery(WireModel):
    """One delivery, normalized from whichever platform reported it.

    Adapters produce this shape; the core only consumes it. On validation the
    status label is filled from ``STATUS_CONFIGS`` when missing and
    ``eta.minutes_remaining`` is re-derived from ``eta.estimated_arrival``, so a
    stale or hand-edited value on the wire never survives. Instances are
    frozen: ``with_status``/``with_eta``/``refresh_eta``/``with_driver_location``
    return revalidated copies.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    platform: Platform
    external_order_id: str = Field(..., min_length=1)

    status: DeliveryStatus
    status_label: str = Field("", validate_default=True)
    status_updated_at: UtcDatetime

    driver: Optional[DriverInfo] = None
    destination: Destination
    # meta precedes eta: minutes_remaining is derived against meta.last_fetched_at
    meta: FetchMeta
    eta: DeliveryEta
    order: OrderSummary
    tracking: TrackingInfo = Field(default_factory=TrackingInfo)
    timestamps: DeliveryTimestamps

    @field_validator("status_label")
    def _label_from_status(cls, v: str, info: ValidationInfo):
        if v and v.strip():
            return v
        status = info.data.get("status")
        # an invalid status is reported on its own field
        return status_label(status) if status is not None else v

    @field_validator("eta")
    def _derived_minutes(cls, v: DeliveryEta, info: ValidationInfo):
        meta = info.data.get("meta")
        reference = v.as_of or (meta.last_fetched_at if meta is not None else None)
        if reference is None:
            return v
        minutes = minutes_until(v.estimated_arrival, reference)
        if minutes != v.minutes_remaining:
            return v.model_copy(update={"minutes_remaining": minutes})
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _revalidated(self, **updates: Any) -> "UnifiedDelivery":
        data = self.model_dump()
        data.update(updates)
        return UnifiedDelivery.model_validate(data)

    def with_status(self, status: DeliveryStatus | str, at: datetime, label: Optional[str] = None) -> "UnifiedDelivery":
        """Copy with a new status. ``label`` defaults to the canonical label."""
        status = DeliveryStatus(status)
        timestamps = self.timestamps.model_dump()
        field = status.value if status.value in timestamps else None
        if field is not None and timestamps[field] is None:
            timestamps[field] = at
        return self._revalidated(
            status=status,
            status_label=label or status_label(status),
            status_updated_at=at,
            timestamps=timestamps,
        )

    def with_eta(self, estimated_arrival: datetime, as_of: datetime) -> "UnifiedDelivery":
        eta = self.eta.model_dump()
        eta.update(estimated_arrival=estimated_arrival, as_of=as_of)
        return self._revalidated(eta=eta)

    def refresh_eta(self, now: datetime) -> "UnifiedDelivery":
        """Recompute ``minutes_remaining`` against ``now``."""
        return self.with_eta(self.eta.estimated_arrival, now)

    def with_driver_location(self, location: DriverLocation) -> "UnifiedDelivery":
        driver = self.driver.model_dump() if self.driver else {}
        driver["location"] = location.model_dump()
        return self._revalidated(driver=driver)
