from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Literal, Optional

from dropdeck.schemas.delivery import DeliveryStatus, UnifiedDelivery
from dropdeck.schemas.platform import Platform
from dropdeck.utils.geo import calculate_distance, eta_minutes_from_distance

ConfidenceLevel = Literal["high", "medium", "low"]
EtaSource = Literal["platform", "calculated", "estimated"]

# historical ETA accuracy per platform (0-100)
PLATFORM_ACCURACY: Dict[Platform, int] = {
    Platform.DOORDASH: 85,
    Platform.UBEREATS: 82,
    Platform.INSTACART: 75,
    Platform.AMAZON: 90,
    Platform.AMAZON_FRESH: 88,
    Platform.WALMART: 78,
    Platform.SHIPT: 80,
    Platform.DRIZLY: 70,
    Platform.TOTALWINE: 65,
    Platform.COSTCO: 72,
    Platform.SAMSCLUB: 73,
}

ORDER_TYPES: Dict[Platform, str] = {
    Platform.DOORDASH: "restaurant",
    Platform.UBEREATS: "restaurant",
    Platform.INSTACART: "grocery",
    Platform.AMAZON_FRESH: "grocery",
    Platform.WALMART: "grocery",
    Platform.SHIPT: "grocery",
    Platform.COSTCO: "grocery",
    Platform.SAMSCLUB: "grocery",
    Platform.DRIZLY: "alcohol",
    Platform.TOTALWINE: "alcohol",
    Platform.AMAZON: "retail",
}

ORDER_TYPE_MODIFIERS = {"restaurant": 1.0, "grocery": 1.15, "alcohol": 1.1, "retail": 1.2}
TRAFFIC_MULTIPLIERS = {"light": 1.0, "moderate": 1.2, "heavy": 1.5}

# rough minutes-to-door when nothing better is known
STATUS_ESTIMATES: Dict[DeliveryStatus, int] = {
    DeliveryStatus.PREPARING: 35,
    DeliveryStatus.READY_FOR_PICKUP: 25,
    DeliveryStatus.DRIVER_ASSIGNED: 20,
    DeliveryStatus.DRIVER_HEADING_TO_STORE: 18,
    DeliveryStatus.DRIVER_AT_STORE: 15,
    DeliveryStatus.OUT_FOR_DELIVERY: 12,
    DeliveryStatus.ARRIVING: 3,
    DeliveryStatus.DELIVERED: 0,
}

HIGH_CONFIDENCE = 80
MEDIUM_CONFIDENCE = 50


@dataclass
class EtaRange:
    min_minutes: int
    max_minutes: int
    earliest: datetime
    latest: datetime


@dataclass
class EtaResult:
    estimated_arrival: datetime
    minutes_remaining: int
    confidence: int
    confidence_level: ConfidenceLevel
    source: EtaSource
    range: Optional[EtaRange] = None
    factors: List[str] = field(default_factory=list)


@dataclass
class EtaChange:
    changed: bool
    direction: Optional[Literal["faster", "slower"]]
    difference: int


def confidence_level(confidence: int) -> ConfidenceLevel:
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def _confidence_score(delivery: UnifiedDelivery, accuracy: int, distance: Optional[float]) -> tuple[int, List[str]]:
    score = 50
    factors: List[str] = []

    # every UnifiedDelivery carries a platform ETA
    score += 20
    factors.append("Platform ETA available")

    if delivery.driver is not None and delivery.driver.location is not None:
        score += 15
        factors.append("Driver location tracked")

    if distance is not None:
        if distance < 1:
            score += 10
            factors.append("Driver nearby (<1 mi)")
        elif distance < 3:
            score += 5
            factors.append("Driver approaching (1-3 mi)")

    if delivery.status in (DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.ARRIVING):
        score += 10
        factors.append("Active delivery status")

    score = int(round(score * accuracy / 100.0))

    traffic = TRAFFIC_MULTIPLIERS.get(delivery.eta.traffic_conditions or "", 1.0)
    if traffic > 1.3:
        score -= 10
        factors.append("Heavy traffic conditions")
    elif traffic > 1.1:
        score -= 5
        factors.append("Moderate traffic")

    return min(max(score, 0), 100), factors


def _eta_range(minutes: int, confidence: int, now: datetime) -> Optional[EtaRange]:
    if confidence >= HIGH_CONFIDENCE:
        return None
    # lower confidence -> wider window
    variance = int(round(minutes * (100 - confidence) / 100.0 * 0.5))
    lo = max(0, minutes - variance)
    hi = minutes + variance
    return EtaRange(min_minutes=lo, max_minutes=hi, earliest=now + timedelta(minutes=lo), latest=now + timedelta(minutes=hi))


def calculate_eta(delivery: UnifiedDelivery, now: datetime) -> EtaResult:
    """Refine a delivery's ETA and attach a confidence score.

    Starts from the platform ETA (re-derived against ``now``), falls back to a
    status-based estimate when the platform reports nothing useful, then
    applies the per-order-type modifier.
    """
    accuracy = PLATFORM_ACCURACY.get(delivery.platform, 70)
    factors: List[str] = []

    distance: Optional[float] = None
    if delivery.driver is not None and delivery.driver.location is not None:
        loc = delivery.driver.location
        distance = calculate_distance(loc.lat, loc.lng, delivery.destination.lat, delivery.destination.lng, "miles")

    minutes = delivery.refresh_eta(now).eta.minutes_remaining
    source: EtaSource = "platform"

    if minutes <= 0 and distance is not None and not delivery.is_terminal:
        minutes = eta_minutes_from_distance(distance)
        source = "calculated"
        factors.append("ETA calculated from distance")

    if minutes <= 0 and delivery.status != DeliveryStatus.DELIVERED:
        minutes = STATUS_ESTIMATES.get(delivery.status, 30)
        source = "estimated"
        factors.append("ETA estimated from status")

    order_type = ORDER_TYPES.get(delivery.platform, "retail")
    modifier = ORDER_TYPE_MODIFIERS.get(order_type, 1.0)
    if modifier > 1 and minutes > 0:
        minutes = int(round(minutes * modifier))
        factors.append(f"Order type adjustment: {order_type}")

    confidence, confidence_factors = _confidence_score(delivery, accuracy, distance)

    return EtaResult(
        estimated_arrival=now + timedelta(minutes=minutes),
        minutes_remaining=minutes,
        confidence=confidence,
        confidence_level=confidence_level(confidence),
        source=source,
        range=_eta_range(minutes, confidence, now),
        factors=factors + confidence_factors,
    )


def calculate_batch_etas(deliveries: Iterable[UnifiedDelivery], now: datetime) -> Dict[str, EtaResult]:
    return {d.id: calculate_eta(d, now) for d in deliveries}


def format_eta_display(minutes: float) -> str:
    if minutes < 1:
        return "Arriving now"
    if minutes < 60:
        return f"{int(round(minutes))} min"
    hours = int(minutes // 60)
    mins = int(round(minutes % 60))
    if mins == 0:
        return f"{hours} hr"
    return f"{hours} hr {mins} min"


def format_eta_range(eta_range: Optional[EtaRange]) -> Optional[str]:
    if eta_range is None:
        return None
    return f"{eta_range.min_minutes}-{eta_range.max_minutes} min"


def has_significant_eta_change(previous_minutes: int, current_minutes: int, threshold: int = 5) -> EtaChange:
    """Whether an ETA moved enough to be worth telling the user about."""
    diff = current_minutes - previous_minutes
    if abs(diff) < threshold:
        return EtaChange(changed=False, direction=None, difference=0)
    return EtaChange(changed=True, direction="faster" if diff < 0 else "slower", difference=abs(diff))
