from datetime import timedelta

from dropdeck.notifications.reconciler import (
    DEFAULT_CAPACITY,
    Notification,
    NotificationReconciler,
    notification_from_event,
)
from dropdeck.schemas.delivery import DriverLocation
from dropdeck.schemas.events import (
    create_connection_status_event,
    create_delivery_update_event,
    create_location_update_event,
    create_system_status_event,
)


def _n(i: int, read: bool = False) -> Notification:
    return Notification(id=f"n-{i}", type="delivery_status_change", title=f"t{i}", body="b", read=read)


def test_add_inserts_most_recent_first():
    r = NotificationReconciler()
    r.add_notification(_n(1))
    r.add_notification(_n(2))
    assert [n.id for n in r.notifications] == ["n-2", "n-1"]
    assert r.unread_count == 2


def test_capacity_keeps_most_recent_fifty():
    r = NotificationReconciler()
    for i in range(DEFAULT_CAPACITY + 10):
        r.add_notification(_n(i))
    ids = [n.id for n in r.notifications]
    assert len(ids) == 50
    assert ids[0] == "n-59"
    assert ids[-1] == "n-10"
    # the counter tracks what is actually held
    assert r.unread_count == 50


def test_eviction_of_read_items_does_not_touch_unread():
    r = NotificationReconciler(capacity=2)
    r.add_notification(_n(1, read=True))
    r.add_notification(_n(2))
    r.add_notification(_n(3))
    assert [n.id for n in r.notifications] == ["n-3", "n-2"]
    assert r.unread_count == 2


def test_mark_as_read_is_idempotent():
    r = NotificationReconciler()
    r.add_notification(_n(1))
    r.add_notification(_n(2))
    assert r.mark_as_read("n-1") is True
    assert r.unread_count == 1
    assert r.mark_as_read("n-1") is False
    assert r.unread_count == 1
    assert r.get("n-1").read is True


def test_mark_unknown_id_never_goes_negative():
    r = NotificationReconciler()
    assert r.mark_as_read("missing") is False
    assert r.unread_count == 0
    r.add_notification(_n(1))
    r.mark_as_read("n-1")
    r.mark_as_read("missing")
    assert r.unread_count == 0


def test_mark_all_as_read():
    r = NotificationReconciler()
    for i in range(3):
        r.add_notification(_n(i))
    r.mark_all_as_read()
    assert r.unread_count == 0
    assert all(n.read for n in r.notifications)
    assert len(r) == 3


def test_clear_all():
    r = NotificationReconciler()
    r.add_notification(_n(1))
    r.clear_all()
    assert r.notifications == []
    assert r.unread_count == 0


def test_duplicate_id_is_ignored():
    r = NotificationReconciler()
    assert r.add_notification(_n(1)) is True
    assert r.add_notification(_n(1)) is False
    assert len(r) == 1
    assert r.unread_count == 1


def test_callback_invoked_with_new_notification():
    seen = []
    r = NotificationReconciler(on_notification=seen.append)
    n = _n(1)
    r.add_notification(n)
    r.add_notification(n)
    assert seen == [n]


def test_notifications_view_is_a_copy():
    r = NotificationReconciler()
    r.add_notification(_n(1))
    view = r.notifications
    view.clear()
    assert len(r) == 1


def test_delivery_update_content(make_delivery, t0):
    snap = make_delivery(status="out_for_delivery", driver={"name": "Luis Ortega"})
    ev = create_delivery_update_event("dlv-1", "doordash", "out_for_delivery", eta=12, delivery=snap, timestamp=t0)
    n = notification_from_event(ev)
    assert n.type == "out_for_delivery"
    assert n.title == "On the Way"
    assert n.body == "Your DoorDash order is out for delivery - arriving in ~12 min"
    assert n.data.delivery_id == "dlv-1"
    assert n.data.action_url == "/delivery/dlv-1"
    assert n.created_at == t0
    assert n.read is False


def test_status_specific_titles(t0):
    titles = {
        "driver_assigned": "Driver Assigned",
        "arriving": "Almost There!",
        "delivered": "Delivered",
        "delayed": "Delivery Delayed",
        "cancelled": "Order Cancelled",
        "preparing": "Delivery Update",
    }
    for status, title in titles.items():
        n = notification_from_event(create_delivery_update_event("d", "instacart", status, timestamp=t0))
        assert n.title == title, status


def test_system_status_notification(t0):
    ev = create_system_status_event("outage", "Orders may be delayed", affected_platforms=["ubereats"], timestamp=t0)
    n = notification_from_event(ev)
    assert n.type == "system_status"
    assert n.title == "Service Disruption"
    assert "Uber Eats" in n.body


def test_location_and_connection_events_do_not_notify(t0):
    loc = DriverLocation(lat=1, lng=1, timestamp=t0)
    assert notification_from_event(create_location_update_event("d", "shipt", loc, timestamp=t0)) is None
    assert notification_from_event(create_connection_status_event("shipt", "error", timestamp=t0)) is None


def test_apply_event_adds_to_list(t0):
    r = NotificationReconciler()
    r.apply_event(create_delivery_update_event("d", "amazon", "delivered", timestamp=t0))
    r.apply_event(create_delivery_update_event("d", "amazon", "delivered", timestamp=t0 + timedelta(seconds=1)))
    assert len(r) == 2
    assert r.notifications[0].created_at == t0 + timedelta(seconds=1)
