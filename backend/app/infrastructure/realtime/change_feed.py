"""
Preferences Change Feed

In-process push notifications for preferences rows. The repository
publishes every committed write; SSE subscribers receive the new row.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, Set

from app.domain.subscription import UserPreferences


logger = logging.getLogger(__name__)


class PreferencesSubscription:
    """
    One subscriber's queue of preferences rows.

    The queue is registered when the subscription is created, so rows
    published before the first read are kept. Iterate it with `async for`;
    `aclose()` or a cancelled read removes it from the feed.
    """

    def __init__(self, feed: "PreferencesChangeFeed", user_id: str, queue: asyncio.Queue):
        self._feed = feed
        self._user_id = user_id
        self._queue = queue
        self._closed = False

    @property
    def user_id(self) -> str:
        return self._user_id

    def __aiter__(self) -> "PreferencesSubscription":
        return self

    async def __anext__(self) -> UserPreferences:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._queue.get()
        except asyncio.CancelledError:
            self.close()
            raise

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._feed._remove(self._user_id, self._queue)

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> "PreferencesSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class PreferencesChangeFeed:
    """
    Fan-out of preferences updates to per-user subscriber queues.

    Publishing never blocks: when a slow subscriber's queue is full its
    oldest pending update is dropped, since only the latest row matters.
    """

    def __init__(self, max_queue_size: int = 16):
        self._max_queue_size = max_queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def publish(self, preferences: UserPreferences) -> None:
        """Deliver a row to every subscriber of its user."""
        for queue in list(self._subscribers.get(preferences.user_id, ())):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(preferences)

    def subscriber_count(self, user_id: str) -> int:
        """Number of open subscriptions for a user."""
        return len(self._subscribers.get(user_id, ()))

    def subscribe(self, user_id: str) -> PreferencesSubscription:
        """
        Start receiving the user's preferences each time they change.

        Rows published from this call on are queued for the subscriber.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[user_id].add(queue)
        logger.debug(f"Preferences subscriber added for user {user_id}")
        return PreferencesSubscription(self, user_id, queue)

    def _remove(self, user_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(user_id)
        if subscribers is not None:
            subscribers.discard(queue)
            if not subscribers:
                del self._subscribers[user_id]
        logger.debug(f"Preferences subscriber removed for user {user_id}")
