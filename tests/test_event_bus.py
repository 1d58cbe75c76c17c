import asyncio

import pytest

from dropdeck.bus.bus import EventBus
from dropdeck.errors import ChannelClosedError


def test_publish_and_subscribe_basic():
    bus = EventBus(default_maxsize=10)
    sub = bus.subscribe("user:u1:deliveries")
    assert bus.publish("user:u1:deliveries", {"i": 1}) == 1
    assert bus.publish("user:u1:deliveries", {"i": 2}) == 1
    assert sub.get_nowait() == {"i": 1}
    assert sub.get_nowait() == {"i": 2}


def test_fan_out_to_every_subscriber():
    bus = EventBus()
    a = bus.subscribe("ch")
    b = bus.subscribe("ch")
    assert bus.publish("ch", "hello") == 2
    assert a.get_nowait() == "hello"
    assert b.get_nowait() == "hello"


def test_publish_without_subscribers():
    bus = EventBus()
    assert bus.publish("nobody", {"x": 1}) == 0
    assert bus.metrics("nobody")["published"] == 1


def test_backpressure_and_metrics():
    bus = EventBus(default_maxsize=1)
    bus.register_channel("ch", maxsize=1)
    sub = bus.subscribe("ch")
    assert bus.publish("ch", {"a": 1}) == 1
    # a full queue drops instead of blocking the producer
    assert bus.publish("ch", {"a": 2}) == 0
    metrics = bus.metrics("ch")
    assert metrics["dropped"] == 1
    assert metrics["queue_depth"] == 1
    assert sub.get_nowait() == {"a": 1}


def test_closed_subscription_stops_receiving():
    bus = EventBus()
    with bus.subscribe("ch") as sub:
        assert bus.subscriber_count("ch") == 1
    assert bus.subscriber_count("ch") == 0
    assert bus.publish("ch", 1) == 0
    sub.close()


def test_async_get_and_closed_error():
    bus = EventBus()
    sub = bus.subscribe("ch")

    async def _run():
        bus.publish("ch", "one")
        first = await sub.get()
        sub.close()
        with pytest.raises(ChannelClosedError):
            await sub.get()
        return first

    assert asyncio.run(_run()) == "one"


def test_close_wakes_blocked_consumer():
    bus = EventBus()
    sub = bus.subscribe("ch")

    async def _run():
        waiter = asyncio.create_task(sub.get())
        await asyncio.sleep(0)
        assert not waiter.done()
        sub.close()
        with pytest.raises(ChannelClosedError):
            await asyncio.wait_for(waiter, 1.0)

    asyncio.run(_run())


def test_close_on_full_queue_keeps_newest_items():
    bus = EventBus()
    bus.register_channel("ch", maxsize=2)
    sub = bus.subscribe("ch")
    bus.publish("ch", "a")
    bus.publish("ch", "b")
    sub.close()
    assert sub.dropped == 1

    async def _run():
        got = [await sub.get()]
        with pytest.raises(ChannelClosedError):
            await sub.get()
        # stays closed on later reads
        with pytest.raises(ChannelClosedError):
            await sub.get()
        return got

    assert asyncio.run(_run()) == ["b"]


def test_get_nowait_after_close_reports_empty():
    bus = EventBus()
    sub = bus.subscribe("ch")
    bus.publish("ch", 1)
    sub.close()
    assert sub.get_nowait() == 1
    with pytest.raises(asyncio.QueueEmpty):
        sub.get_nowait()


def test_metrics_for_unknown_channel():
    assert EventBus().metrics("missing") == {}
