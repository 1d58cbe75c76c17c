from dropdeck.tracking.store import DeliveryTracker, STATUS_PRIORITY

__all__ = ["DeliveryTracker", "STATUS_PRIORITY"]
