"""In-process event bus — publish once, fan out to every matching subscriber.

Learn: Each subscription owns an unbounded asyncio.Queue. publish() walks
the current subscribers and drops the event into every queue whose topic
filter accepts it. That is all it does: no awaiting, no backpressure, so
a slow browser never stalls the request that published the change.

Guarantees:
- Per-subscriber FIFO: events come out of a queue in publish order.
- No backlog: a subscription only sees events published after it exists.
- Isolation: one subscriber blowing up is logged, the rest still get
  the event, and the publisher never sees the error.

Everything runs on the event loop thread, so the subscriber registry needs
no locking: it is only touched between awaits.
"""

import asyncio
from collections.abc import Hashable, Iterable
from typing import Any, Generic, Optional, TypeVar

import structlog

logger = structlog.get_logger()

EventT = TypeVar("EventT")

# Wakes a consumer blocked in __anext__ after cancel()
_END = object()


class BusSubscription(Generic[EventT]):
    """A cancellable, lazily consumed stream of bus events.

    Iterate with `async for`. Iteration ends once the subscription is
    cancelled or the bus closes; a cancelled subscription cannot be
    restarted — subscribe again instead.
    """

    def __init__(self, bus: "EventBus[EventT]", topics: Optional[frozenset] = None):
        self.bus = bus
        self.topics = topics
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def accepts(self, event: EventT) -> bool:
        return self.topics is None or event.topic in self.topics

    def deliver(self, event: EventT) -> None:
        # A subscription mid-cancel silently drops the event (at-most-once)
        if self._cancelled:
            return
        self._queue.put_nowait(event)

    def cancel(self) -> None:
        """Unregister from the bus. Safe to call any number of times."""
        if self._cancelled:
            return
        self._cancelled = True
        self.bus._discard(self)
        self._queue.put_nowait(_END)

    def __aiter__(self) -> "BusSubscription[EventT]":
        return self

    async def __anext__(self) -> EventT:
        if self._cancelled:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END or self._cancelled:
            raise StopAsyncIteration
        return item


class EventBus(Generic[EventT]):
    """Single point of publication for one kind of event.

    Events must expose a `topic` attribute; subscriptions filter on it.
    """

    def __init__(self, name: str = "events"):
        self.name = name
        # dict as an insertion-ordered set
        self._subscribers: dict[BusSubscription[EventT], None] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self, topics: Optional[Iterable[Hashable]] = None
    ) -> BusSubscription[EventT]:
        """Open a subscription. `topics=None` (or empty) means every topic."""
        accepted = frozenset(topics) if topics else None
        subscription: BusSubscription[EventT] = BusSubscription(self, accepted)
        if self._closed:
            # Finished from the start; iteration ends immediately
            subscription.cancel()
            return subscription
        self._subscribers[subscription] = None
        return subscription

    def publish(self, event: EventT) -> None:
        """Hand `event` to every matching subscriber. Never raises."""
        if self._closed:
            logger.debug("event_bus.publish_after_close", bus=self.name)
            return

        for subscription in list(self._subscribers):
            if not subscription.accepts(event):
                continue
            try:
                subscription.deliver(event)
            except Exception as e:
                logger.warning(
                    "event_bus.delivery_failed",
                    bus=self.name,
                    topic=_topic_label(event),
                    error=str(e),
                )

    def close(self) -> None:
        """End every subscription and refuse further publishes."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            subscription.cancel()
        logger.info("event_bus.closed", bus=self.name)

    def _discard(self, subscription: BusSubscription[EventT]) -> None:
        self._subscribers.pop(subscription, None)


def _topic_label(event: Any) -> str:
    topic = getattr(event, "topic", None)
    return getattr(topic, "value", str(topic))
