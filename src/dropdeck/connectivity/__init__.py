from dropdeck.connectivity.monitor import (
    ConnectivityMonitor,
    NetworkInfo,
    OnlineStatus,
    ReconnectPolicy,
    TransportTracker,
    is_slow_connection,
)
from dropdeck.connectivity.state import ConnectionState, NetworkStatus, can_transition

__all__ = [
    "ConnectionState",
    "ConnectivityMonitor",
    "NetworkInfo",
    "NetworkStatus",
    "OnlineStatus",
    "ReconnectPolicy",
    "TransportTracker",
    "can_transition",
    "is_slow_connection",
]
