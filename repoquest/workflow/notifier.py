"""
Change notifier.

A single-producer, multi-consumer broadcast of StateDescriptor snapshots.
Each subscriber owns a bounded queue; when it is full the oldest snapshot is
dropped, so a slow subscriber misses intermediate states but never blocks the
publisher. Only the latest snapshot is authoritative anyway.
"""

import logging
import threading
from collections import deque

from repoquest.quest.state import StateDescriptor

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 8


class Subscription:
    """One consumer's view of the snapshot stream."""

    def __init__(self, notifier: "ChangeNotifier", maxsize: int):
        self._notifier = notifier
        self._queue: deque[StateDescriptor] = deque(maxlen=maxsize)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    def _offer(self, snapshot: StateDescriptor) -> None:
        with self._cond:
            if self._closed:
                return
            if len(self._queue) == self._queue.maxlen:
                self.dropped += 1
            self._queue.append(snapshot)
            self._cond.notify_all()

    def get(self, timeout: float | None = None) -> StateDescriptor | None:
        """Next snapshot, or None on timeout / after close."""
        with self._cond:
            if not self._queue and not self._closed:
                self._cond.wait(timeout)
            if self._queue:
                return self._queue.popleft()
            return None

    def drain(self) -> list[StateDescriptor]:
        """All pending snapshots, oldest first, without waiting."""
        with self._cond:
            items = list(self._queue)
            self._queue.clear()
            return items

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self._notifier._remove(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self):
        while True:
            snapshot = self.get()
            if snapshot is None:
                return
            yield snapshot

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ChangeNotifier:
    """Publish point for recomputed snapshots."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: list[Subscription] = []
        self._latest: StateDescriptor | None = None

    @property
    def latest(self) -> StateDescriptor | None:
        return self._latest

    def subscribe(self, replay_latest: bool = False) -> Subscription:
        sub = Subscription(self, self.queue_size)
        with self._lock:
            self._subscribers.append(sub)
            latest = self._latest
        if replay_latest and latest is not None:
            sub._offer(latest)
        return sub

    def publish(self, snapshot: StateDescriptor) -> None:
        # Publishing under the lock keeps every subscriber's order identical
        with self._lock:
            self._latest = snapshot
            for sub in self._subscribers:
                sub._offer(snapshot)
            count = len(self._subscribers)
        logger.debug(f"[NOTIFY] Published {snapshot.progress} to {count} subscriber(s)")

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)
