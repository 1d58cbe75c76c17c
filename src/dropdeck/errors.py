from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class DropDeckError(Exception):
    """Base error for the dashboard core.

    Carries a stable machine-readable ``code`` and an optional context mapping
    so callers (HTTP layer, logs) can report failures without string parsing.
    """

    code = "DROPDECK_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }


class ValidationError(DropDeckError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context=context)
        self.errors = list(errors or [])

    @classmethod
    def from_pydantic(cls, exc, message: str = "invalid payload") -> "ValidationError":
        # pydantic errors() may carry non-JSON values under "ctx"; keep the useful keys
        errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
        return cls(message, errors=errors)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["errors"] = self.errors
        return out


class AuthError(DropDeckError):
    code = "AUTH_ERROR"


class PlatformError(DropDeckError):
    code = "PLATFORM_ERROR"

    def __init__(self, platform: str, message: str = "Platform connection error", context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context={**(context or {}), "platform": platform})
        self.platform = platform


class PreferenceUpdateError(DropDeckError):
    """Raised when the external preferences store rejects an update."""

    code = "PREFERENCE_UPDATE_FAILED"

    def __init__(self, key: str, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message or f"failed to update preference {key!r}", context={**(context or {}), "key": key})
        self.key = key


class ChannelClosedError(DropDeckError):
    code = "CHANNEL_CLOSED"
