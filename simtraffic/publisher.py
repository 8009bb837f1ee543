"""
Push delivery of completed cycles to streaming subscribers.

Each subscriber owns a small bounded queue. publish() only ever does
non-blocking puts: when a subscriber has fallen behind, its oldest queued
snapshot is dropped to make room. A slow or vanished client therefore
costs nothing to the scheduler or to the other subscribers.
"""

import logging
import queue
import threading
import itertools
from typing import Optional, Dict, Iterator

from simtraffic.models.observation import StoreSnapshot

logger = logging.getLogger(__name__)

# Queued to tell a subscriber the hub is shutting down
CLOSED = object()


class Subscription:
    """One connected consumer."""

    def __init__(self, subscriber_id: int, maxsize: int):
        self.id = subscriber_id
        self._queue: 'queue.Queue' = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False
        self._last_cycle = 0

    def offer(self, item) -> None:
        """Enqueue without blocking, discarding the oldest item if full."""
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[StoreSnapshot]:
        """
        Next snapshot for this subscriber.

        Returns None on timeout (caller may send a keep-alive) or once the
        hub has closed this subscription; check `closed` to tell them apart.
        Snapshots older than one already delivered are skipped.
        """
        while not self.closed:
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                return None
            if item is CLOSED:
                self.closed = True
                return None
            if item.cycle < self._last_cycle:
                continue
            self._last_cycle = item.cycle
            return item
        return None

    def __iter__(self) -> Iterator[StoreSnapshot]:
        while not self.closed:
            snapshot = self.get()
            if snapshot is not None:
                yield snapshot


class SubscriberHub:
    """
    Registry of streaming subscribers.

    Thread-safe: subscribe/unsubscribe come from request threads while
    publish() runs on the scheduler thread.
    """

    def __init__(self, queue_size: int = 8):
        self.queue_size = queue_size
        self._subscribers: Dict[int, Subscription] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._published = 0

    def subscribe(self, initial: Optional[StoreSnapshot] = None) -> Subscription:
        """Register a subscriber, optionally primed with the current snapshot."""
        sub = Subscription(next(self._ids), self.queue_size)
        with self._lock:
            self._subscribers[sub.id] = sub
        # Primed after registering; a newer cycle that sneaks in first wins in get()
        if initial is not None and initial.is_initialized:
            sub.offer(initial)
        logger.debug(f'Subscriber {sub.id} connected ({len(self)} total)')
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.pop(sub.id, None)
        if sub.dropped:
            logger.info(f'Subscriber {sub.id} disconnected after {sub.dropped} dropped updates')
        else:
            logger.debug(f'Subscriber {sub.id} disconnected')

    def publish(self, snapshot: StoreSnapshot) -> int:
        """
        Offer a snapshot to every subscriber.

        Returns count of subscribers it was offered to.
        """
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._published += 1

        for sub in subscribers:
            sub.offer(snapshot)

        return len(subscribers)

    def close_all(self) -> None:
        """Tell every subscriber to end its stream."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()

        for sub in subscribers:
            sub.offer(CLOSED)

        if subscribers:
            logger.info(f'Closed {len(subscribers)} subscriber streams')

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                'subscribers': len(self._subscribers),
                'published': self._published,
                'dropped': sum(sub.dropped for sub in self._subscribers.values()),
            }
