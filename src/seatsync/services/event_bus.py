from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

SEAT_UPDATE = "seatUpdate"
SEAT_TIMEOUT = "seatTimeout"
SEAT_EXTENDED = "seatExtended"


@dataclass(frozen=True)
class SeatEvent:
    kind: str
    data: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        return {"event": self.kind, "data": self.data}


@dataclass(eq=False)
class Subscription:
    id: int
    queue: asyncio.Queue = field(repr=False)
    dropped: int = 0

    async def get(self) -> SeatEvent:
        return await self.queue.get()


class SeatEventBus:
    """Fan-out of seat notifications to live subscribers.

    publish() never waits: a subscriber whose queue is full loses the event
    instead of slowing down the router.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        subscription = Subscription(id=next(self._ids), queue=asyncio.Queue(maxsize=self._queue_size))
        self._subscriptions[subscription.id] = subscription
        logger.info("Subscriber %d attached (%d total)", subscription.id, self.subscriber_count)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.info("Subscriber %d detached (%d total)", subscription.id, self.subscriber_count)

    def publish(self, event: SeatEvent) -> None:
        for subscription in list(self._subscriptions.values()):
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.warning(
                    "Subscriber %d is not keeping up, dropped %s (%d dropped so far)",
                    subscription.id,
                    event.kind,
                    subscription.dropped,
                )
