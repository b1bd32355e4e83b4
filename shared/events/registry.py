"""
shared/events/registry.py
In-process pub/sub for live directory updates.

Each subscriber owns a bounded asyncio.Queue. Publishing never blocks the
publisher: when a subscriber falls behind, its oldest pending event is dropped.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Set

logger = logging.getLogger(__name__)

SERVICE_CREATED = "service.created"
SERVICE_DELETED = "service.deleted"
REVIEW_CREATED = "review.created"


class SubscriberRegistry:
    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: Set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[asyncio.Queue]:
        """Subscription bound to a `with` block, e.g. one WebSocket connection."""
        queue = self.subscribe()
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    def publish(self, event: str, payload: Dict[str, Any]) -> int:
        """Fan an event out to every subscriber. Returns how many received it."""
        message = {
            "event": event,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
                logger.debug(f"Subscriber queue full, dropped oldest event before {event}")
            queue.put_nowait(message)
        return len(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)


# Process-wide registry
registry = SubscriberRegistry()
