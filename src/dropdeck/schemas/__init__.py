"""Contract-first models shared by adapters, the event bus and clients.

``delivery`` holds the normalized delivery record, ``events`` the tagged
realtime events pushed to clients and ``platform`` the platform registry.
Validation is strict at construction so malformed producer output is rejected
at the edge instead of leaking into client state.
"""

__all__ = ["delivery", "events", "platform"]
