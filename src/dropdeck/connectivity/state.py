from __future__ import annotations

from enum import Enum


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED, ConnectionState.FAILED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED, ConnectionState.FAILED},
    # a failed client may be restarted explicitly
    ConnectionState.FAILED: {ConnectionState.CONNECTING},
}


def can_transition(from_state: ConnectionState | str, to_state: ConnectionState | str) -> bool:
    """Return True if a transition from from_state -> to_state is allowed."""
    f = ConnectionState(from_state) if not isinstance(from_state, ConnectionState) else from_state
    t = ConnectionState(to_state) if not isinstance(to_state, ConnectionState) else to_state
    return t in ALLOWED_TRANSITIONS.get(f, set())


class NetworkStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
