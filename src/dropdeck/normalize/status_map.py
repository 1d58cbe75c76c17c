"""Raw platform status strings -> DeliveryStatus.

Each table covers the statuses a platform is known to emit. Lookups normalize
case and separators first; anything unknown maps to ``preparing`` so a new
upstream status never breaks ingestion.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Dict, Mapping

from dropdeck.schemas.delivery import DeliveryStatus as S
from dropdeck.schemas.platform import Platform
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

StatusMap = Mapping[str, S]


def _frozen(d: Dict[str, S]) -> StatusMap:
    return MappingProxyType(d)


DOORDASH: StatusMap = _frozen({
    "created": S.PREPARING,
    "confirmed": S.PREPARING,
    "being_prepared": S.PREPARING,
    "ready_for_pickup": S.READY_FOR_PICKUP,
    "dasher_confirmed": S.DRIVER_ASSIGNED,
    "dasher_confirmed_store_arrived": S.DRIVER_AT_STORE,
    "picking_up": S.DRIVER_AT_STORE,
    "picked_up": S.OUT_FOR_DELIVERY,
    "en_route_to_consumer": S.OUT_FOR_DELIVERY,
    "arriving": S.ARRIVING,
    "arrived": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
    "delayed": S.DELAYED,
})

UBEREATS: StatusMap = _frozen({
    "pending": S.PREPARING,
    "accepted": S.PREPARING,
    "preparing": S.PREPARING,
    "ready_for_pickup": S.READY_FOR_PICKUP,
    "courier_assigned": S.DRIVER_ASSIGNED,
    "courier_heading_to_store": S.DRIVER_HEADING_TO_STORE,
    "courier_at_store": S.DRIVER_AT_STORE,
    "in_transit": S.OUT_FOR_DELIVERY,
    "arriving": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
})

INSTACART: StatusMap = _frozen({
    "order_placed": S.PREPARING,
    "order_acknowledged": S.PREPARING,
    "shopping": S.PREPARING,
    "checkout": S.PREPARING,
    "ready": S.READY_FOR_PICKUP,
    "shopper_assigned": S.DRIVER_ASSIGNED,
    "on_the_way": S.DRIVER_HEADING_TO_STORE,
    "at_store": S.DRIVER_AT_STORE,
    "delivering": S.OUT_FOR_DELIVERY,
    "almost_there": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
    "delayed": S.DELAYED,
})

AMAZON: StatusMap = _frozen({
    "pending": S.PREPARING,
    "processing": S.PREPARING,
    "shipped": S.OUT_FOR_DELIVERY,
    "out_for_delivery": S.OUT_FOR_DELIVERY,
    "arriving_today": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
    "delayed": S.DELAYED,
})

WALMART: StatusMap = _frozen({
    "order_placed": S.PREPARING,
    "order_received": S.PREPARING,
    "preparing": S.PREPARING,
    "ready_for_pickup": S.READY_FOR_PICKUP,
    "driver_assigned": S.DRIVER_ASSIGNED,
    "driver_heading_to_store": S.DRIVER_HEADING_TO_STORE,
    "driver_at_store": S.DRIVER_AT_STORE,
    "on_the_way": S.OUT_FOR_DELIVERY,
    "arriving": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
})

SHIPT: StatusMap = _frozen({
    "submitted": S.PREPARING,
    "processing": S.PREPARING,
    "shopping": S.PREPARING,
    "shopper_assigned": S.DRIVER_ASSIGNED,
    "on_the_way_to_store": S.DRIVER_HEADING_TO_STORE,
    "at_store": S.DRIVER_AT_STORE,
    "on_the_way": S.OUT_FOR_DELIVERY,
    "almost_there": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
})

SAMSCLUB: StatusMap = _frozen({
    "order_placed": S.PREPARING,
    "processing": S.PREPARING,
    "preparing": S.PREPARING,
    "driver_assigned": S.DRIVER_ASSIGNED,
    "out_for_delivery": S.OUT_FOR_DELIVERY,
    "arriving": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
})

DRIZLY: StatusMap = _frozen({
    "submitted": S.PREPARING,
    "accepted": S.PREPARING,
    "preparing": S.PREPARING,
    "ready_for_pickup": S.READY_FOR_PICKUP,
    "out_for_delivery": S.OUT_FOR_DELIVERY,
    "arriving": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
})

TOTALWINE: StatusMap = _frozen({
    "submitted": S.PREPARING,
    "processing": S.PREPARING,
    "ready": S.READY_FOR_PICKUP,
    "out_for_delivery": S.OUT_FOR_DELIVERY,
    "arriving": S.ARRIVING,
    "delivered": S.DELIVERED,
    "cancelled": S.CANCELLED,
})

# Costco orders are fulfilled through Instacart
_STATUS_MAPS: Dict[Platform, StatusMap] = {
    Platform.DOORDASH: DOORDASH,
    Platform.UBEREATS: UBEREATS,
    Platform.INSTACART: INSTACART,
    Platform.AMAZON: AMAZON,
    Platform.AMAZON_FRESH: AMAZON,
    Platform.WALMART: WALMART,
    Platform.SHIPT: SHIPT,
    Platform.COSTCO: INSTACART,
    Platform.SAMSCLUB: SAMSCLUB,
    Platform.DRIZLY: DRIZLY,
    Platform.TOTALWINE: TOTALWINE,
}

_SEPARATORS = re.compile(r"[- ]")


def get_status_map(platform: Platform | str) -> StatusMap:
    try:
        return _STATUS_MAPS[Platform(platform)]
    except ValueError:
        return _frozen({})


def normalize_raw_status(raw: str) -> str:
    return _SEPARATORS.sub("_", raw.strip().lower())


def map_platform_status(platform: Platform | str, raw_status: str) -> S:
    key = normalize_raw_status(raw_status)
    status = get_status_map(platform).get(key)
    if status is None:
        logger.debug("unmapped %s status %r, defaulting to preparing", platform, raw_status)
        return S.PREPARING
    return status
