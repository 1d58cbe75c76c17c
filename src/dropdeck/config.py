"""Runtime settings.

Values come from ``DROPDECK_*`` environment variables, after a local ``.env``
file (if any) has been loaded with python-dotenv. Components take the values
they need as constructor arguments; ``load_settings()`` is only called at the
application edge (``dropdeck.main``) and in tests that exercise it directly.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "DROPDECK_"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # notification list capacity (oldest evicted beyond this)
    notification_capacity: int = Field(50, ge=1)
    # how long is_just_changed stays true after an online/offline transition
    just_changed_window_sec: float = Field(3.0, ge=0.0)
    # downlink estimate (Mbps) below which a connection is considered slow
    slow_downlink_mbps: float = Field(0.5, ge=0.0)
    # reconnect policy exposed to the transport layer
    auto_reconnect: bool = True
    max_reconnect_attempts: int = Field(5, ge=0)
    reconnect_delay_ms: int = Field(1000, ge=0)
    # bounded per-channel queue size on the event bus
    bus_channel_maxsize: int = Field(100, ge=1)
    # user stream tokens
    jwt_secret: str = "dev-secret-key-please-change"
    jwt_algorithm: str = "HS256"
    token_ttl_sec: int = Field(60 * 60, ge=1)
    debug: bool = False


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in Settings.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            # pydantic coerces "0"/"false"/"3.5" etc. to the declared types
            out[name] = raw
    return out


def load_settings(env_file: Optional[str] = ".env", environ: Optional[Dict[str, str]] = None) -> Settings:
    """Build Settings from the environment.

    ``environ`` defaults to ``os.environ``; tests pass a plain dict instead.
    """
    if environ is None:
        if env_file:
            dotenv.load_dotenv(env_file)
        environ = dict(os.environ)
    return Settings(**_env_overrides(environ))
