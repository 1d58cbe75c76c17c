"""Notification preferences and the filter deciding whether to notify.

Preferences are owned by an external store (``PreferencesStore``); this module
keeps a local copy, applies changes optimistically and rolls back when the
store rejects them. It never retries: a failed write is the caller's to handle.
"""

from __future__ import annotations

import re
from datetime import datetime, time
from typing import Any, Optional, Protocol

from pydantic import Field, ValidationError as PydanticValidationError, field_validator

from dropdeck.errors import PreferenceUpdateError, ValidationError
from dropdeck.schemas.delivery import WireModel
from dropdeck.schemas.platform import Platform
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class NotificationPreferences(WireModel):
    push_enabled: bool = True
    in_app_enabled: bool = True
    sound_enabled: bool = True
    driver_assigned: bool = True
    out_for_delivery: bool = True
    arriving_soon: bool = True
    delivered: bool = True
    delayed: bool = True
    platform_status: bool = True
    # None means every platform is enabled
    enabled_platforms: Optional[list[Platform]] = None
    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[str] = Field("22:00")
    quiet_hours_end: Optional[str] = Field("08:00")

    @field_validator("quiet_hours_start", "quiet_hours_end")
    def _hhmm(cls, v: Optional[str]):
        if v is not None and not _HHMM.match(v):
            raise ValueError("expected HH:MM (24h)")
        return v


def _minutes(hhmm: str) -> int:
    h, m = hhmm.split(":")
    return int(h) * 60 + int(m)


def is_quiet_hours(prefs: NotificationPreferences, now: datetime | time) -> bool:
    """Whether ``now`` falls in the quiet window; overnight windows wrap midnight."""
    if not prefs.quiet_hours_enabled or not prefs.quiet_hours_start or not prefs.quiet_hours_end:
        return False
    t = now.time() if isinstance(now, datetime) else now
    current = t.hour * 60 + t.minute
    start = _minutes(prefs.quiet_hours_start)
    end = _minutes(prefs.quiet_hours_end)
    if start > end:
        return current >= start or current < end
    return start <= current < end


_TYPE_TO_PREF = {
    "driver_assigned": "driver_assigned",
    "out_for_delivery": "out_for_delivery",
    "arriving_soon": "arriving_soon",
    "delivered": "delivered",
    "delay_detected": "delayed",
    "platform_connected": "platform_status",
    "platform_disconnected": "platform_status",
}


def is_type_enabled(prefs: NotificationPreferences, notification_type: str) -> bool:
    key = _TYPE_TO_PREF.get(notification_type)
    return True if key is None else bool(getattr(prefs, key))


def is_platform_enabled(prefs: NotificationPreferences, platform: Platform | str | None) -> bool:
    if prefs.enabled_platforms is None or platform is None:
        return True
    try:
        return Platform(platform) in prefs.enabled_platforms
    except ValueError:
        return False


def should_notify(prefs: NotificationPreferences, notification_type: str, platform: Platform | str | None, now: datetime | time) -> bool:
    if not prefs.in_app_enabled:
        return False
    if is_quiet_hours(prefs, now):
        return False
    return is_type_enabled(prefs, notification_type) and is_platform_enabled(prefs, platform)


class PreferencesStore(Protocol):
    """External persistence for preferences (a server API in production)."""

    def load(self, user_id: str) -> Optional[NotificationPreferences]: ...

    def save(self, user_id: str, prefs: NotificationPreferences) -> None: ...


class InMemoryPreferencesStore:
    """Dict-backed store for tests and local runs. ``fail_next`` simulates a rejection."""

    def __init__(self):
        self._prefs: dict[str, NotificationPreferences] = {}
        self.fail_next: Optional[Exception] = None

    def load(self, user_id: str) -> Optional[NotificationPreferences]:
        return self._prefs.get(user_id)

    def save(self, user_id: str, prefs: NotificationPreferences) -> None:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        self._prefs[user_id] = prefs


class PreferencesManager:
    def __init__(self, user_id: str, store: PreferencesStore):
        self.user_id = user_id
        self.store = store
        self.preferences = store.load(user_id) or NotificationPreferences()

    def update_preference(self, key: str, value: Any) -> NotificationPreferences:
        """Set one preference and persist it.

        The local copy changes first so the UI reflects it immediately; if the
        store raises, the previous value is restored and PreferenceUpdateError
        is raised with the original exception chained.
        """
        if key not in NotificationPreferences.model_fields:
            raise PreferenceUpdateError(key, f"unknown preference {key!r}")
        previous = self.preferences
        data = previous.model_dump()
        data[key] = value
        try:
            updated = NotificationPreferences.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, f"invalid value for {key!r}") from exc
        self.preferences = updated
        try:
            self.store.save(self.user_id, updated)
        except Exception as exc:
            self.preferences = previous
            logger.debug("preference update %s rejected by store: %s", key, exc)
            raise PreferenceUpdateError(key, context={"reason": str(exc)}) from exc
        return updated
