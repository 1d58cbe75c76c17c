import asyncio
from datetime import time, timedelta

from dropdeck.bus.bus import EventBus
from dropdeck.connectivity.monitor import ConnectivityMonitor
from dropdeck.notifications.preferences import InMemoryPreferencesStore, PreferencesManager
from dropdeck.realtime.session import DashboardSession
from dropdeck.schemas.delivery import DeliveryStatus
from dropdeck.schemas.events import (
    create_connection_status_event,
    create_delivery_update_event,
    create_system_status_event,
    user_connections_channel,
    user_deliveries_channel,
)
from dropdeck.schemas.platform import Platform, PlatformConnectionStatus
from dropdeck.signals import SignalSource


def _publish(bus, user_id, event):
    channel = user_connections_channel(user_id) if event.type == "connection_status" else user_deliveries_channel(user_id)
    return bus.publish(channel, event.to_wire())


def test_session_routes_events_into_state(make_delivery, t0):
    bus = EventBus()
    session = DashboardSession("u1", bus)
    session.hydrate([make_delivery()])
    session.open()

    _publish(bus, "u1", create_delivery_update_event("dlv-1", "doordash", "out_for_delivery", eta=9, timestamp=t0 + timedelta(minutes=2)))
    _publish(bus, "u1", create_connection_status_event("doordash", "connected", timestamp=t0))
    assert session.drain() == 2

    d = session.tracker.get("dlv-1")
    assert d.status == DeliveryStatus.OUT_FOR_DELIVERY
    assert d.eta.minutes_remaining == 9
    assert session.tracker.platform_connections[Platform.DOORDASH] == PlatformConnectionStatus.CONNECTED
    assert session.notifications.unread_count == 1
    assert session.notifications.notifications[0].title == "On the Way"
    session.close()


def test_stale_and_redelivered_updates_do_not_notify(make_delivery, t0):
    bus = EventBus()
    with DashboardSession("u1", bus) as session:
        session.hydrate([make_delivery()])
        newer = create_delivery_update_event("dlv-1", "doordash", "arriving", timestamp=t0 + timedelta(minutes=10))
        older = create_delivery_update_event("dlv-1", "doordash", "driver_assigned", timestamp=t0 + timedelta(minutes=4))
        _publish(bus, "u1", newer)
        _publish(bus, "u1", older)
        session.drain()
        assert session.tracker.get("dlv-1").status == DeliveryStatus.ARRIVING
        assert [n.title for n in session.notifications.notifications] == ["Almost There!"]


def test_malformed_messages_are_counted_and_ignored(make_delivery):
    bus = EventBus()
    with DashboardSession("u1", bus) as session:
        session.hydrate([make_delivery()])
        bus.publish(user_deliveries_channel("u1"), {"type": "delivery_update", "payload": {}})
        bus.publish(user_deliveries_channel("u1"), "not even json")
        assert session.drain() == 2
        assert session.ignored == 2
        assert session.tracker.get("dlv-1").status == DeliveryStatus.PREPARING
        assert session.notifications.unread_count == 0


def test_preferences_suppress_notifications(make_delivery, t0):
    bus = EventBus()
    prefs = PreferencesManager("u1", InMemoryPreferencesStore())
    prefs.update_preference("delivered", False)
    with DashboardSession("u1", bus, preferences=prefs, now=lambda: t0) as session:
        session.hydrate([make_delivery()])
        session.handle_message(create_delivery_update_event("dlv-1", "doordash", "delivered", timestamp=t0).to_wire())
        assert session.tracker.get("dlv-1").status == DeliveryStatus.DELIVERED
        assert session.notifications.unread_count == 0


def test_quiet_hours_suppress_system_notifications(t0):
    bus = EventBus()
    prefs = PreferencesManager("u1", InMemoryPreferencesStore())
    prefs.update_preference("quiet_hours_enabled", True)
    late = t0.replace(hour=23)
    with DashboardSession("u1", bus, preferences=prefs, now=lambda: late) as session:
        session.handle_message(create_system_status_event("maintenance", "Upgrading", timestamp=t0).to_wire())
        assert session.tracker.system_status is not None
        assert len(session.notifications) == 0


def test_connection_events_reach_monitor(clock, t0):
    bus = EventBus()
    signals = SignalSource()
    monitor = ConnectivityMonitor(signals, clock=clock)
    session = DashboardSession("u1", bus, monitor=monitor).open()
    _publish(bus, "u1", create_connection_status_event("instacart", "expired", timestamp=t0))
    session.drain()
    assert monitor.unhealthy_platforms() == [Platform.INSTACART]
    session.close()
    # closing the session releases the monitor's host listeners and bus subscriptions
    assert signals.listener_count() == 0
    assert bus.subscriber_count(user_deliveries_channel("u1")) == 0
    assert not session.is_open


def test_sessions_do_not_share_state(make_delivery, t0):
    bus = EventBus()
    a = DashboardSession("alice", bus).open()
    b = DashboardSession("bob", bus).open()
    a.hydrate([make_delivery()])
    b.hydrate([make_delivery()])
    _publish(bus, "alice", create_delivery_update_event("dlv-1", "doordash", "delivered", timestamp=t0))
    a.drain()
    b.drain()
    assert a.tracker.get("dlv-1").status == DeliveryStatus.DELIVERED
    assert b.tracker.get("dlv-1").status == DeliveryStatus.PREPARING
    a.close()
    b.close()


def test_run_consumes_until_cancelled(make_delivery, t0):
    bus = EventBus()
    session = DashboardSession("u1", bus)
    session.hydrate([make_delivery()])

    async def _run():
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0)
        _publish(bus, "u1", create_delivery_update_event("dlv-1", "doordash", "driver_assigned", timestamp=t0 + timedelta(minutes=1)))
        for _ in range(20):
            if session.tracker.get("dlv-1").status == DeliveryStatus.DRIVER_ASSIGNED:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(_run())
    assert session.tracker.get("dlv-1").status == DeliveryStatus.DRIVER_ASSIGNED
    assert session.notifications.notifications[0].title == "Driver Assigned"
    session.close()


def test_run_returns_after_close(make_delivery, t0):
    bus = EventBus()
    session = DashboardSession("u1", bus)
    session.hydrate([make_delivery()])

    async def _run():
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0)
        assert session.is_open
        session.close()
        await asyncio.wait_for(task, 1.0)
        return task

    task = asyncio.run(_run())
    assert task.done() and task.exception() is None
    assert not session.is_open
    assert bus.subscriber_count(user_deliveries_channel("u1")) == 0
