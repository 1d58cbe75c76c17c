from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List

from dropdeck.errors import ChannelClosedError
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

# end-of-stream marker queued by Subscription.close
_CLOSED = object()


class Subscription:
    """One consumer's bounded queue on a channel.

    Obtained from ``EventBus.subscribe``; ``close()`` detaches it so no
    further messages are delivered. Usable as a context manager.
    """

    def __init__(self, channel: "Channel", maxsize: int):
        self.channel = channel
        self.q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.maxsize = int(maxsize)
        self.dropped = 0
        self.closed = False

    @property
    def depth(self) -> int:
        return self.q.qsize()

    def offer(self, item: Any) -> bool:
        # non-blocking: when the consumer lags we drop instead of stalling producers
        try:
            self.q.put_nowait(item)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> Any:
        if self.closed and self.q.empty():
            raise ChannelClosedError(f"subscription on {self.channel.name} is closed")
        item = await self.q.get()
        if item is _CLOSED:
            raise ChannelClosedError(f"subscription on {self.channel.name} is closed")
        return item

    def get_nowait(self) -> Any:
        item = self.q.get_nowait()
        if item is _CLOSED:
            raise asyncio.QueueEmpty
        return item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.channel._detach(self)
        # wake a consumer blocked in get(); on a full queue the oldest item gives way
        if self.q.full():
            self.q.get_nowait()
            self.dropped += 1
        self.q.put_nowait(_CLOSED)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Channel:
    def __init__(self, name: str, maxsize: int = 100):
        self.name = name
        self.maxsize = int(maxsize)
        self.subscribers: List[Subscription] = []
        self.published = 0
        self.created_at = time.time()

    def _detach(self, sub: Subscription) -> None:
        try:
            self.subscribers.remove(sub)
        except ValueError:
            pass

    def publish(self, item: Any) -> int:
        """Fan ``item`` out to every subscriber. Returns how many accepted it."""
        self.published += 1
        delivered = 0
        for sub in list(self.subscribers):
            if sub.offer(item):
                delivered += 1
        return delivered

    @property
    def dropped(self) -> int:
        return sum(s.dropped for s in self.subscribers)


class EventBus:
    """In-process pub/sub keyed by channel name (``user:<id>:deliveries`` etc).

    Stands in for the managed realtime service: producers publish already
    validated event dicts, each subscriber gets its own bounded queue so a
    slow client cannot grow memory without limit.
    """

    def __init__(self, default_maxsize: int = 100):
        self.channels: Dict[str, Channel] = {}
        self.default_maxsize = int(default_maxsize)

    def _ensure_channel(self, name: str) -> Channel:
        ch = self.channels.get(name)
        if ch is None:
            ch = Channel(name, maxsize=self.default_maxsize)
            self.channels[name] = ch
        return ch

    def register_channel(self, name: str, maxsize: int | None = None) -> Channel:
        ch = self._ensure_channel(name)
        if maxsize is not None:
            ch.maxsize = int(maxsize)
        return ch

    def subscribe(self, name: str) -> Subscription:
        ch = self._ensure_channel(name)
        sub = Subscription(ch, maxsize=ch.maxsize)
        ch.subscribers.append(sub)
        logger.debug("subscribed to %s (subscribers=%s)", name, len(ch.subscribers))
        return sub

    def publish(self, name: str, item: Any) -> int:
        ch = self._ensure_channel(name)
        delivered = ch.publish(item)
        if delivered < len(ch.subscribers):
            logger.debug("channel %s: %s of %s subscribers dropped the message", name, len(ch.subscribers) - delivered, len(ch.subscribers))
        return delivered

    def subscriber_count(self, name: str) -> int:
        ch = self.channels.get(name)
        return len(ch.subscribers) if ch else 0

    def metrics(self, name: str) -> Dict[str, int]:
        """Return simple metrics for one channel."""
        ch = self.channels.get(name)
        if ch is None:
            return {}
        return {
            "subscribers": len(ch.subscribers),
            "published": ch.published,
            "dropped": ch.dropped,
            "maxsize": ch.maxsize,
            "queue_depth": max((s.depth for s in ch.subscribers), default=0),
        }
