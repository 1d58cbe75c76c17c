from dropdeck.bus.bus import Channel, EventBus, Subscription

__all__ = ["Channel", "EventBus", "Subscription"]
