from __future__ import annotations

from typing import Any, Callable, Dict, List

from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

Listener = Callable[..., Any]


class ListenerHandle:
    """Registration returned by ``SignalSource.add_listener``.

    Closing is idempotent. Usable as a context manager so a listener's
    lifetime can be scoped to a ``with`` block.
    """

    def __init__(self, source: "SignalSource", name: str, listener: Listener):
        self._source = source
        self.name = name
        self.listener = listener
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self._source._remove(self)
        self.closed = True

    def __enter__(self) -> "ListenerHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class SignalSource:
    """Synchronous named-signal emitter.

    Stands in for the host environment's event targets (``online``/``offline``
    network signals, connection-quality ``change``, ``keydown``). Listeners
    run in registration order on the emitting thread.
    """

    def __init__(self):
        self._listeners: Dict[str, List[ListenerHandle]] = {}

    def add_listener(self, name: str, listener: Listener) -> ListenerHandle:
        handle = ListenerHandle(self, name, listener)
        self._listeners.setdefault(name, []).append(handle)
        return handle

    def _remove(self, handle: ListenerHandle) -> None:
        handles = self._listeners.get(handle.name)
        if not handles:
            return
        try:
            handles.remove(handle)
        except ValueError:
            return
        if not handles:
            del self._listeners[handle.name]

    def listener_count(self, name: str | None = None) -> int:
        if name is not None:
            return len(self._listeners.get(name, ()))
        return sum(len(v) for v in self._listeners.values())

    def emit(self, name: str, *args: Any, **kwargs: Any) -> int:
        """Invoke every listener for ``name``. Returns how many were called."""
        # snapshot so a listener may close itself (or others) while we iterate
        handles = list(self._listeners.get(name, ()))
        called = 0
        for h in handles:
            if h.closed:
                continue
            h.listener(*args, **kwargs)
            called += 1
        return called
