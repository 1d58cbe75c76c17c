import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import pytest

# tests/conftest.py

# keep test runs from writing log files into the working tree
os.environ.setdefault("DROPDECK_LOG_DIR", "")

from fastapi.testclient import TestClient  # noqa: E402

import dropdeck.main as main_mod  # noqa: E402
from dropdeck.schemas.delivery import UnifiedDelivery  # noqa: E402

T0 = datetime(2026, 3, 14, 18, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def app():
    """FastAPI app instance."""
    return main_mod.app


@pytest.fixture
def client(app) -> TestClient:
    """TestClient for the FastAPI app."""
    return TestClient(app)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def t0() -> datetime:
    return T0


def delivery_dict(
    delivery_id: str = "dlv-1",
    platform: str = "doordash",
    status: str = "preparing",
    eta_minutes: int = 30,
    at: datetime = T0,
    **overrides: Any,
) -> Dict[str, Any]:
    """Wire-shaped (camelCase) UnifiedDelivery payload."""
    d: Dict[str, Any] = {
        "id": delivery_id,
        "platform": platform,
        "externalOrderId": f"ORD-{delivery_id}",
        "status": status,
        "statusUpdatedAt": at.isoformat(),
        "destination": {"address": "1 Market St, San Francisco, CA", "lat": 37.7936, "lng": -122.3950},
        "eta": {"estimatedArrival": (at + timedelta(minutes=eta_minutes)).isoformat()},
        "order": {"itemCount": 2, "totalAmount": 2450, "currency": "USD"},
        "timestamps": {"ordered": (at - timedelta(minutes=5)).isoformat()},
        "meta": {"lastFetchedAt": at.isoformat(), "fetchMethod": "webhook", "adapterId": f"{platform}-adapter"},
    }
    d.update(overrides)
    return d


@pytest.fixture
def make_delivery() -> Callable[..., UnifiedDelivery]:
    """Return a helper building a validated UnifiedDelivery.

    Usage: d = make_delivery("dlv-2", platform="instacart", status="out_for_delivery")
    """

    def _make(*args: Any, **kwargs: Any) -> UnifiedDelivery:
        return UnifiedDelivery.model_validate(delivery_dict(*args, **kwargs))

    return _make


@pytest.fixture
def make_delivery_dict() -> Callable[..., Dict[str, Any]]:
    return delivery_dict
