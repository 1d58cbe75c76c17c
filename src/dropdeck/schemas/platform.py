from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict


class Platform(str, Enum):
    INSTACART = "instacart"
    DOORDASH = "doordash"
    UBEREATS = "ubereats"
    AMAZON_FRESH = "amazon_fresh"
    WALMART = "walmart"
    SHIPT = "shipt"
    DRIZLY = "drizly"
    TOTALWINE = "totalwine"
    COSTCO = "costco"
    SAMSCLUB = "samsclub"
    AMAZON = "amazon"


class PlatformConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    EXPIRED = "expired"


class PlatformConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Platform
    name: str
    color: str
    supports_oauth: bool = False
    supports_webhooks: bool = False
    supports_live_location: bool = False


def _cfg(p: Platform, name: str, color: str, oauth: bool, webhooks: bool, live: bool) -> PlatformConfig:
    return PlatformConfig(id=p, name=name, color=color, supports_oauth=oauth, supports_webhooks=webhooks, supports_live_location=live)


PLATFORM_CONFIGS: Dict[Platform, PlatformConfig] = {
    Platform.INSTACART: _cfg(Platform.INSTACART, "Instacart", "#43B02A", True, True, True),
    Platform.DOORDASH: _cfg(Platform.DOORDASH, "DoorDash", "#FF3008", True, True, True),
    Platform.UBEREATS: _cfg(Platform.UBEREATS, "Uber Eats", "#06C167", True, True, True),
    Platform.AMAZON_FRESH: _cfg(Platform.AMAZON_FRESH, "Amazon Fresh", "#FF9900", False, False, True),
    Platform.WALMART: _cfg(Platform.WALMART, "Walmart+", "#0071DC", False, False, True),
    Platform.SHIPT: _cfg(Platform.SHIPT, "Shipt", "#00A859", False, False, True),
    Platform.DRIZLY: _cfg(Platform.DRIZLY, "Drizly", "#6B46C1", False, False, False),
    Platform.TOTALWINE: _cfg(Platform.TOTALWINE, "Total Wine", "#6D2C41", False, False, False),
    Platform.COSTCO: _cfg(Platform.COSTCO, "Costco", "#E31837", False, False, True),
    Platform.SAMSCLUB: _cfg(Platform.SAMSCLUB, "Sam's Club", "#0067A0", False, False, True),
    Platform.AMAZON: _cfg(Platform.AMAZON, "Amazon", "#FF9900", False, False, True),
}


def platform_display_name(platform: Platform | str) -> str:
    try:
        return PLATFORM_CONFIGS[Platform(platform)].name
    except ValueError:
        return str(platform)
