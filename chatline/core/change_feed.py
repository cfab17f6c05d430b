import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    doc_id: str


class Subscription:
    """Queue of change events for one listener, filtered by collection"""

    def __init__(self, feed: "ChangeFeed", collections: Optional[Iterable[str]] = None):
        self.feed = feed
        self.collections: Optional[Set[str]] = set(collections) if collections else None
        self.queue: "asyncio.Queue[Optional[ChangeEvent]]" = asyncio.Queue()

    def wants(self, event: ChangeEvent) -> bool:
        return self.collections is None or event.collection in self.collections

    def drain(self) -> int:
        """Drop already queued events so a burst of writes triggers one refresh"""
        dropped = 0
        while not self.queue.empty():
            if self.queue.get_nowait() is None:
                # Keep the close marker for the next read
                self.queue.put_nowait(None)
                break
            dropped += 1
        return dropped

    def close(self):
        self.feed.unsubscribe(self)
        self.queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ChangeFeed:
    """In-process publish/subscribe of committed document writes"""

    def __init__(self):
        self.subscribers: Set[Subscription] = set()

    def subscribe(self, collections: Optional[Iterable[str]] = None) -> Subscription:
        subscription = Subscription(self, collections)
        self.subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        self.subscribers.discard(subscription)

    def publish(self, events: Iterable[ChangeEvent]):
        events = list(events)
        for subscription in list(self.subscribers):
            for event in events:
                if subscription.wants(event):
                    subscription.queue.put_nowait(event)
        if events:
            logger.debug(f"Published {len(events)} change events to {len(self.subscribers)} subscribers")


# Global change feed instance
change_feed = ChangeFeed()
