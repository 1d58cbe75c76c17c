from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Tuple

EARTH_RADIUS_MILES = 3959.0
EARTH_RADIUS_KM = 6371.0
# average city driving speed used when no platform ETA is available
DEFAULT_SPEED_MPH = 25.0


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float, unit: str = "miles") -> float:
    """Great-circle (haversine) distance between two coordinates."""
    radius = EARTH_RADIUS_MILES if unit == "miles" else EARTH_RADIUS_KM
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return radius * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def eta_minutes_from_distance(distance_miles: float, speed_mph: float = DEFAULT_SPEED_MPH) -> int:
    return int(round(distance_miles / speed_mph * 60))


def calculate_heading(from_lat: float, from_lng: float, to_lat: float, to_lng: float) -> float:
    """Initial bearing in degrees, normalized to [0, 360)."""
    d_lng = math.radians(to_lng - from_lng)
    lat1 = math.radians(from_lat)
    lat2 = math.radians(to_lat)
    y = math.sin(d_lng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lng)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def interpolate_location(start: Tuple[float, float], end: Tuple[float, float], fraction: float) -> Tuple[float, float]:
    return (start[0] + (end[0] - start[0]) * fraction, start[1] + (end[1] - start[1]) * fraction)


def minutes_until(target: datetime, now: datetime) -> int:
    """Whole minutes from ``now`` until ``target``, never negative."""
    return max(0, int(round((target - now).total_seconds() / 60.0)))


def mask_phone_number(phone: str) -> str:
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 4:
        return phone
    return f"***-***-{digits[-4:]}"


def mask_license_plate(plate: str) -> str:
    if len(plate) < 3:
        return plate
    return f"***{plate[-3:]}"
