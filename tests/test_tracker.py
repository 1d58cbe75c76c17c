from datetime import datetime, timedelta

from dropdeck.schemas.delivery import DeliveryStatus, DriverLocation
from dropdeck.schemas.events import (
    create_connection_status_event,
    create_delivery_update_event,
    create_location_update_event,
    create_system_status_event,
)
from dropdeck.schemas.platform import Platform, PlatformConnectionStatus
from dropdeck.tracking import DeliveryTracker


def _tracker(make_delivery, *deliveries):
    t = DeliveryTracker()
    t.hydrate(deliveries or [make_delivery()])
    return t


def test_hydrate_skips_invalid_entries(make_delivery_dict):
    t = DeliveryTracker()
    bad = make_delivery_dict("broken", platform="nope")
    assert t.hydrate([make_delivery_dict("a"), bad, make_delivery_dict("b")]) == 2
    assert "a" in t and "b" in t and "broken" not in t
    assert [d.id for d in t.deliveries] == ["a", "b"]


def test_hydrate_replaces_previous_state(make_delivery):
    t = _tracker(make_delivery, make_delivery("a"))
    t.hydrate([make_delivery("b")])
    assert len(t) == 1 and t.get("a") is None


def test_delivery_update_applies_status_and_eta(make_delivery, t0):
    t = _tracker(make_delivery)
    ts = t0 + timedelta(minutes=5)
    assert t.apply(create_delivery_update_event("dlv-1", "doordash", "out_for_delivery", eta=12, timestamp=ts))
    d = t.get("dlv-1")
    assert d.status == DeliveryStatus.OUT_FOR_DELIVERY
    assert d.status_updated_at == ts
    assert d.eta.minutes_remaining == 12
    assert d.eta.estimated_arrival == ts + timedelta(minutes=12)
    assert t.last_updated_at == ts


def test_stale_update_never_overwrites_newer_state(make_delivery, t0):
    t = _tracker(make_delivery)
    newer = create_delivery_update_event("dlv-1", "doordash", "arriving", timestamp=t0 + timedelta(minutes=10))
    older = create_delivery_update_event("dlv-1", "doordash", "driver_assigned", timestamp=t0 + timedelta(minutes=3))
    assert t.apply(newer)
    assert t.apply(older) is False
    assert t.get("dlv-1").status == DeliveryStatus.ARRIVING


def test_update_older_than_hydrated_snapshot_is_dropped(make_delivery, t0):
    t = _tracker(make_delivery, make_delivery(status="out_for_delivery", at=t0))
    ev = create_delivery_update_event("dlv-1", "doordash", "preparing", timestamp=t0 - timedelta(seconds=30))
    assert t.apply(ev) is False
    assert t.get("dlv-1").status == DeliveryStatus.OUT_FOR_DELIVERY


def test_equal_timestamp_is_applied(make_delivery, t0):
    t = _tracker(make_delivery)
    assert t.apply(create_delivery_update_event("dlv-1", "doordash", "driver_assigned", timestamp=t0))


def test_unknown_delivery_needs_snapshot(make_delivery, t0):
    t = DeliveryTracker()
    bare = create_delivery_update_event("dlv-7", "shipt", "driver_assigned", timestamp=t0)
    assert t.apply(bare) is False
    snap = make_delivery("dlv-7", platform="shipt")
    with_snap = create_delivery_update_event("dlv-7", "shipt", "driver_assigned", delivery=snap, timestamp=t0)
    assert t.apply(with_snap)
    assert t.get("dlv-7").status == DeliveryStatus.DRIVER_ASSIGNED


def test_location_updates_are_ordered_by_fix_time(make_delivery, t0):
    t = _tracker(make_delivery)
    first = DriverLocation(lat=37.70, lng=-122.40, timestamp=t0 + timedelta(seconds=20))
    stale = DriverLocation(lat=37.60, lng=-122.30, timestamp=t0 + timedelta(seconds=10))
    assert t.apply(create_location_update_event("dlv-1", "doordash", first, timestamp=t0 + timedelta(seconds=21)))
    assert t.apply(create_location_update_event("dlv-1", "doordash", stale, timestamp=t0 + timedelta(seconds=22))) is False
    assert t.get("dlv-1").driver.location.lat == 37.70


def test_location_for_unknown_delivery_ignored(t0):
    t = DeliveryTracker()
    loc = DriverLocation(lat=1, lng=1, timestamp=t0)
    assert t.apply(create_location_update_event("ghost", "doordash", loc, timestamp=t0)) is False


def test_connection_status_per_platform(t0):
    t = DeliveryTracker()
    assert t.apply(create_connection_status_event("doordash", "error", timestamp=t0 + timedelta(seconds=5)))
    assert t.apply(create_connection_status_event("doordash", "connected", timestamp=t0)) is False
    assert t.apply(create_connection_status_event("instacart", "connected", timestamp=t0))
    assert t.platform_connections == {
        Platform.DOORDASH: PlatformConnectionStatus.ERROR,
        Platform.INSTACART: PlatformConnectionStatus.CONNECTED,
    }


def test_system_status_keeps_newest(t0):
    t = DeliveryTracker()
    t.apply(create_system_status_event("outage", "down", timestamp=t0 + timedelta(minutes=1)))
    assert t.apply(create_system_status_event("info", "old news", timestamp=t0)) is False
    assert t.system_status.payload.type == "outage"


def test_filtered_views(make_delivery):
    t = _tracker(
        make_delivery,
        make_delivery("a", platform="doordash", status="out_for_delivery", driver={"name": "Priya Patel"}),
        make_delivery("b", platform="instacart", status="preparing"),
        make_delivery("c", platform="instacart", status="delivered"),
    )
    assert [d.id for d in t.filtered(platforms=["instacart"])] == ["b", "c"]
    assert [d.id for d in t.filtered(statuses=[DeliveryStatus.DELIVERED])] == ["c"]
    assert [d.id for d in t.filtered(search="priya")] == ["a"]
    assert [d.id for d in t.filtered(search="ORD-B")] == ["b"]
    assert [d.id for d in t.filtered(platforms=["instacart"], statuses=["preparing"])] == ["b"]


def test_sorted_views(make_delivery, t0):
    t = _tracker(
        make_delivery,
        make_delivery("slow", platform="walmart", status="preparing", eta_minutes=40),
        make_delivery("soon", platform="amazon", status="arriving", eta_minutes=3),
        make_delivery("mid", platform="doordash", status="driver_assigned", eta_minutes=15),
    )
    assert [d.id for d in t.sorted("eta")] == ["soon", "mid", "slow"]
    assert [d.id for d in t.sorted("status")] == ["soon", "mid", "slow"]
    assert [d.id for d in t.sorted("platform")] == ["soon", "mid", "slow"]
    assert [d.id for d in t.sorted("eta", descending=True)] == ["slow", "mid", "soon"]


def test_counts_and_stats(make_delivery, t0):
    delivered = make_delivery("done", status="delivered").with_status("delivered", at=t0)
    t = _tracker(
        make_delivery,
        make_delivery("a", status="arriving", eta_minutes=4),
        make_delivery("b", status="preparing", eta_minutes=45),
        make_delivery("x", status="cancelled"),
        delivered,
    )
    assert t.active_count() == 2
    assert t.arriving_soon_count() == 1
    assert t.delivered_today_count(t0 + timedelta(hours=2)) == 1
    assert t.stats(t0) == {"active": 2, "arriving_soon": 1, "delivered_today": 1, "total": 4}


def test_remove(make_delivery):
    t = _tracker(make_delivery)
    assert t.remove("dlv-1")
    assert not t.remove("dlv-1")
    assert len(t) == 0


def test_delivered_today_accepts_naive_now(make_delivery, t0):
    delivered = make_delivery("done", status="delivered").with_status("delivered", at=t0)
    t = _tracker(make_delivery, delivered, make_delivery("a", status="arriving", eta_minutes=4))
    assert t.delivered_today_count(datetime(2026, 3, 14, 20, 0)) == 1
    assert t.delivered_today_count(datetime(2026, 3, 15, 9, 0)) == 0
    assert t.stats(datetime(2026, 3, 14, 20, 0))["delivered_today"] == 1


def test_update_with_mismatched_snapshot_is_dropped(make_delivery, t0):
    t = DeliveryTracker()
    snap = make_delivery("other")
    ev = create_delivery_update_event("dlv-1", "doordash", "driver_assigned", delivery=snap, timestamp=t0)
    assert t.apply(ev) is False
    assert "dlv-1" not in t and "other" not in t
    assert t.last_updated_at is None


def test_snapshot_fix_time_guards_older_locations(make_delivery, t0):
    fix = {"lat": 37.70, "lng": -122.40, "timestamp": (t0 + timedelta(seconds=30)).isoformat()}
    t = DeliveryTracker()
    t.upsert(make_delivery(driver={"name": "Ana", "location": fix}))
    older = DriverLocation(lat=37.60, lng=-122.30, timestamp=t0 + timedelta(seconds=10))
    assert t.apply(create_location_update_event("dlv-1", "doordash", older, timestamp=t0 + timedelta(seconds=40))) is False
    assert t.get("dlv-1").driver.location.lat == 37.70

    newer = DriverLocation(lat=37.75, lng=-122.35, timestamp=t0 + timedelta(seconds=45))
    assert t.apply(create_location_update_event("dlv-1", "doordash", newer, timestamp=t0 + timedelta(seconds=46)))
    assert t.get("dlv-1").driver.location.lat == 37.75
