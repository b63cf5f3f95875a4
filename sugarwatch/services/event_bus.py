"""In-process publish/subscribe bus for CGM update notifications.

The ingestion path publishes to a topic; every SSE connection holds its
own subscription. Delivery is at-most-once with no replay: a subscriber
only sees payloads published while it is registered.

A subscription either carries a handler, which is called synchronously
during `publish`, or owns a bounded buffer that its consumer drains
with `await subscription.get()`.
"""

import asyncio
import itertools
from collections import deque
from collections.abc import Callable
from typing import Any

from sugarwatch.logging_config import get_logger

logger = get_logger(__name__)

DEXCOM_DATA_UPDATED = "dexcom-data-updated"

EventHandler = Callable[[Any], None]


class SubscriberLimitError(Exception):
    """Raised when the bus already holds its maximum number of subscribers."""

    pass


class SubscriptionClosed(Exception):
    """Raised by `Subscription.get` once the subscription has been closed."""

    pass


class Subscription:
    """Handle for one registered subscriber."""

    def __init__(
        self,
        bus: "EventBus",
        topic: str,
        subscription_id: int,
        handler: EventHandler | None = None,
        max_queue_size: int = 0,
    ):
        self.bus = bus
        self.topic = topic
        self.id = subscription_id
        self.handler = handler
        self.max_queue_size = max_queue_size
        self.closed = False
        self.evicted = False
        self._buffer: deque | None = None if handler is not None else deque()
        # Set whenever the buffer gains a payload or the subscription closes
        self._wakeup = asyncio.Event()

    def deliver(self, payload: Any) -> bool:
        """Hand a payload to this subscriber.

        Returns False when the subscription is already closed, in which
        case the payload is dropped.
        """
        if self.closed:
            return False

        if self.handler is not None:
            self.handler(payload)
            return True

        if self.max_queue_size and len(self._buffer) >= self.max_queue_size:
            logger.warning(
                "Evicting slow subscriber",
                topic=self.topic,
                subscription_id=self.id,
            )
            self.evicted = True
            self.bus.unsubscribe(self)
            return False

        self._buffer.append(payload)
        self._wakeup.set()
        return True

    async def get(self) -> Any:
        """Wait for the next queued payload.

        Cancelling a pending call never consumes a payload: items leave
        the buffer only after the wait has returned.

        Raises:
            SubscriptionClosed: once the subscription is closed and any
                payloads queued before closing have been consumed
        """
        if self._buffer is None:
            raise TypeError("Handler subscriptions do not queue payloads")

        while True:
            if self._buffer:
                return self._buffer.popleft()
            if self.closed:
                raise SubscriptionClosed()
            self._wakeup.clear()
            await self._wakeup.wait()

    def pending(self) -> int:
        """Number of queued payloads not yet consumed."""
        return len(self._buffer) if self._buffer is not None else 0

    def _close(self) -> None:
        self.closed = True
        self._wakeup.set()

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, topic={self.topic}, closed={self.closed})>"


class EventBus:
    """Topic-based fan-out to registered subscribers.

    Construct one per application and pass it to the publishers and
    stream handlers that need it.
    """

    def __init__(self, max_subscribers: int | None = None):
        self.max_subscribers = max_subscribers
        self._subscribers: dict[str, list[Subscription]] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        topic: str,
        handler: EventHandler | None = None,
        max_queue_size: int = 0,
    ) -> Subscription:
        """Register a subscriber for `topic`.

        Args:
            topic: Event name to listen on
            handler: Optional callback invoked synchronously on publish.
                Without one, payloads are queued on the subscription.
            max_queue_size: Queue bound for handler-less subscriptions
                (0 means unbounded). A full queue evicts the subscriber.

        Raises:
            SubscriberLimitError: If max_subscribers is already reached
        """
        if (
            self.max_subscribers is not None
            and self.subscriber_count() >= self.max_subscribers
        ):
            raise SubscriberLimitError(
                f"Subscriber limit of {self.max_subscribers} reached"
            )

        subscription = Subscription(
            self,
            topic,
            next(self._ids),
            handler=handler,
            max_queue_size=max_queue_size,
        )
        self._subscribers.setdefault(topic, []).append(subscription)

        logger.debug(
            "Subscriber registered",
            topic=topic,
            subscription_id=subscription.id,
            subscriber_count=len(self._subscribers[topic]),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber. Safe to call any number of times."""
        subscription._close()

        subscribers = self._subscribers.get(subscription.topic)
        if not subscribers:
            return

        # Copy-on-write so an in-flight publish keeps iterating its snapshot
        remaining = [s for s in subscribers if s is not subscription]
        if len(remaining) == len(subscribers):
            return

        if remaining:
            self._subscribers[subscription.topic] = remaining
        else:
            del self._subscribers[subscription.topic]

        logger.debug(
            "Subscriber removed",
            topic=subscription.topic,
            subscription_id=subscription.id,
            subscriber_count=len(remaining),
        )

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver `payload` to every current subscriber of `topic`.

        Subscribers are served in registration order. A handler that
        raises is logged and skipped; delivery to the rest continues.

        Returns:
            Number of subscribers the payload was delivered to
        """
        snapshot = list(self._subscribers.get(topic, ()))
        delivered = 0

        for subscription in snapshot:
            try:
                if subscription.deliver(payload):
                    delivered += 1
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    topic=topic,
                    subscription_id=subscription.id,
                    error=str(e),
                )

        logger.debug(
            "Event published",
            topic=topic,
            subscriber_count=len(snapshot),
            delivered=delivered,
        )
        return delivered

    def subscriber_count(self, topic: str | None = None) -> int:
        """Count live subscribers for one topic, or across all topics."""
        if topic is not None:
            return len(self._subscribers.get(topic, ()))
        return sum(len(subs) for subs in self._subscribers.values())
