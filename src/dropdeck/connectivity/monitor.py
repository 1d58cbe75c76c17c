from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from dropdeck.connectivity.state import ConnectionState, NetworkStatus, can_transition
from dropdeck.schemas.events import ConnectionStatusEvent
from dropdeck.schemas.platform import Platform, PlatformConnectionStatus
from dropdeck.signals import ListenerHandle, SignalSource
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

# signal names emitted by the host environment
ONLINE = "online"
OFFLINE = "offline"
CONNECTION_CHANGE = "change"

SLOW_EFFECTIVE_TYPES = frozenset({"slow-2g", "2g"})
DEFAULT_SLOW_DOWNLINK_MBPS = 0.5
DEFAULT_JUST_CHANGED_WINDOW = 3.0


@dataclass(frozen=True)
class NetworkInfo:
    """Network-quality hints, when the host exposes them."""

    connection_type: Optional[str] = None
    effective_type: Optional[str] = None
    downlink: Optional[float] = None  # Mbps
    save_data: bool = False


def is_slow_connection(info: Optional[NetworkInfo], slow_downlink_mbps: float = DEFAULT_SLOW_DOWNLINK_MBPS) -> bool:
    if info is None:
        return False
    if info.effective_type in SLOW_EFFECTIVE_TYPES or info.save_data:
        return True
    return info.downlink is not None and info.downlink < slow_downlink_mbps


@dataclass(frozen=True)
class OnlineStatus:
    is_online: bool
    is_just_changed: bool
    time_since_change: Optional[float]
    connection_type: Optional[str]
    effective_type: Optional[str]
    is_slow_connection: bool


class ConnectivityMonitor:
    """Tracks network reachability from host ``online``/``offline`` signals.

    A transition is a change between online and offline; a repeated signal
    for the current state is ignored. ``is_just_changed`` holds for
    ``just_changed_window`` seconds after a transition and is evaluated
    against ``clock`` on read, so no timer is left running. Going offline
    never touches notification or delivery state, it only flips the flag.

    The monitor owns three listener registrations on ``signals``; ``close()``
    (or leaving a ``with`` block) releases all of them.
    """

    def __init__(
        self,
        signals: SignalSource,
        *,
        initially_online: bool = True,
        network: Optional[NetworkInfo] = None,
        clock: Callable[[], float] = time.monotonic,
        just_changed_window: float = DEFAULT_JUST_CHANGED_WINDOW,
        slow_downlink_mbps: float = DEFAULT_SLOW_DOWNLINK_MBPS,
    ):
        self.status = NetworkStatus.ONLINE if initially_online else NetworkStatus.OFFLINE
        self.network = network
        self.clock = clock
        self.just_changed_window = float(just_changed_window)
        self.slow_downlink_mbps = float(slow_downlink_mbps)
        self.last_change_at: Optional[float] = None
        self.platform_status: Dict[Platform, PlatformConnectionStatus] = {}
        # edge callbacks (on_online / on_offline) live on a private source
        self._edges = SignalSource()
        self._handles: List[ListenerHandle] = [
            signals.add_listener(ONLINE, self._handle_online),
            signals.add_listener(OFFLINE, self._handle_offline),
            signals.add_listener(CONNECTION_CHANGE, self._handle_connection_change),
        ]
        self.closed = False

    # -- host signals --------------------------------------------------------

    def _transition(self, to: NetworkStatus) -> bool:
        if self.status == to:
            return False
        self.status = to
        self.last_change_at = self.clock()
        logger.info("network is now %s", to.value)
        self._edges.emit(to.value)
        return True

    def _handle_online(self, network: Optional[NetworkInfo] = None) -> None:
        if network is not None:
            self.network = network
        self._transition(NetworkStatus.ONLINE)

    def _handle_offline(self) -> None:
        self._transition(NetworkStatus.OFFLINE)

    def _handle_connection_change(self, network: NetworkInfo) -> None:
        self.network = network
        logger.debug("network quality changed: %s", network)

    # -- derived state -------------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self.status == NetworkStatus.ONLINE

    @property
    def time_since_change(self) -> Optional[float]:
        if self.last_change_at is None:
            return None
        return max(0.0, self.clock() - self.last_change_at)

    @property
    def is_just_changed(self) -> bool:
        elapsed = self.time_since_change
        return elapsed is not None and elapsed < self.just_changed_window

    @property
    def is_slow_connection(self) -> bool:
        return is_slow_connection(self.network, self.slow_downlink_mbps)

    def snapshot(self) -> OnlineStatus:
        return OnlineStatus(
            is_online=self.is_online,
            is_just_changed=self.is_just_changed,
            time_since_change=self.time_since_change,
            connection_type=self.network.connection_type if self.network else None,
            effective_type=self.network.effective_type if self.network else None,
            is_slow_connection=self.is_slow_connection,
        )

    # -- platform reachability ----------------------------------------------

    def apply_connection_event(self, event: ConnectionStatusEvent) -> None:
        p = event.payload
        previous = self.platform_status.get(p.platform)
        self.platform_status[p.platform] = p.status
        if previous != p.status:
            logger.info("platform %s connection: %s -> %s", p.platform.value, previous.value if previous else None, p.status.value)

    def unhealthy_platforms(self) -> List[Platform]:
        return [p for p, s in self.platform_status.items() if s != PlatformConnectionStatus.CONNECTED]

    # -- subscriptions -------------------------------------------------------

    def on_online(self, callback: Callable[[], None]) -> ListenerHandle:
        """Run ``callback`` on every offline -> online edge."""
        return self._edges.add_listener(NetworkStatus.ONLINE.value, callback)

    def on_offline(self, callback: Callable[[], None]) -> ListenerHandle:
        return self._edges.add_listener(NetworkStatus.OFFLINE.value, callback)

    def close(self) -> None:
        for h in self._handles:
            h.close()
        self._handles = []
        self.closed = True

    def __enter__(self) -> "ConnectivityMonitor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded retry schedule for the realtime transport.

    The core does not reconnect anything itself; the transport asks this
    policy how long to wait before attempt ``n`` (1-based) and gets None once
    it should give up.
    """

    auto_reconnect: bool = True
    max_attempts: int = 5
    delay_ms: int = 1000
    backoff: float = 2.0
    max_delay_ms: int = 30_000

    def next_delay(self, attempt: int) -> Optional[float]:
        if not self.auto_reconnect or attempt < 1 or attempt > self.max_attempts:
            return None
        delay = self.delay_ms * (self.backoff ** (attempt - 1))
        return min(delay, self.max_delay_ms) / 1000.0


class TransportTracker:
    """Follows the realtime client's connection state as the transport reports it."""

    def __init__(self, policy: Optional[ReconnectPolicy] = None):
        self.policy = policy or ReconnectPolicy()
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self._changes = SignalSource()

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def report(self, to_state: ConnectionState | str) -> bool:
        """Record a state reported by the transport; illegal transitions are ignored."""
        to_state = ConnectionState(to_state)
        if to_state == self.state:
            return False
        if not can_transition(self.state, to_state):
            logger.debug("ignoring transport transition %s -> %s", self.state.value, to_state.value)
            return False
        previous, self.state = self.state, to_state
        if to_state == ConnectionState.CONNECTED:
            self.attempts = 0
        elif to_state == ConnectionState.DISCONNECTED and previous in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self.attempts += 1
        logger.debug("transport %s -> %s (attempts=%s)", previous.value, to_state.value, self.attempts)
        self._changes.emit("state", to_state)
        return True

    def next_retry_delay(self) -> Optional[float]:
        if self.state != ConnectionState.DISCONNECTED:
            return None
        return self.policy.next_delay(self.attempts)

    @property
    def exhausted(self) -> bool:
        return self.attempts > 0 and self.next_retry_delay() is None and self.state == ConnectionState.DISCONNECTED

    def on_state_change(self, callback: Callable[[ConnectionState], None]) -> ListenerHandle:
        return self._changes.add_listener("state", callback)
