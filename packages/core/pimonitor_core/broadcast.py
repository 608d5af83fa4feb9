"""Single-producer fan-out of encoded snapshots to independent subscribers."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from pimonitor_telemetry import MonitorError, Snapshot, StartupError, encode_snapshot

logger = logging.getLogger("pimonitor.broadcast")


class HubClosedError(MonitorError):
    """Raised by ``publish`` once the hub has been closed."""


@dataclass(frozen=True)
class Broadcast:
    sequence: int
    snapshot: Snapshot
    payload: str


@dataclass
class HubStats:
    published: int = 0
    delivered: int = 0
    encoded: int = 0
    skipped_empty: int = 0
    dropped: int = 0


@dataclass(frozen=True)
class SubscriberInfo:
    session_id: str
    connected_at: datetime
    connected_duration_seconds: float

    def as_dict(self) -> dict:
        return {
            "id": self.session_id,
            "connected_at": self.connected_at.isoformat(),
            "connected_duration_seconds": round(self.connected_duration_seconds, 3),
        }


class Subscription:
    """Bounded drop-oldest ring of broadcasts for one consumer.

    When the ring is full, the oldest unread broadcast is discarded and the lag
    counter grows. The publisher never waits on a subscription.
    """

    def __init__(self, session_id: str, capacity: int, on_close: Callable[[str], None]) -> None:
        self.session_id = session_id
        self.capacity = capacity
        self.connected_at = datetime.now(timezone.utc)
        self._connected_mono = time.monotonic()
        self._queue: deque[Broadcast] = deque(maxlen=capacity)
        self._ready = asyncio.Event()
        self._on_close = on_close
        self._closed = False
        self._lagged = 0
        self._lag_reported = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lagged(self) -> int:
        return self._lagged

    @property
    def pending(self) -> int:
        return len(self._queue)

    def connected_duration(self) -> float:
        return max(time.monotonic() - self._connected_mono, 0.0)

    def take_lag(self) -> int:
        missed = self._lagged - self._lag_reported
        self._lag_reported = self._lagged
        return missed

    def _push(self, item: Broadcast) -> bool:
        dropped = len(self._queue) == self.capacity
        if dropped:
            self._lagged += 1
        self._queue.append(item)
        self._ready.set()
        return dropped

    def _wake(self) -> None:
        self._closed = True
        self._ready.set()

    def try_recv(self) -> Broadcast | None:
        if self._queue:
            return self._queue.popleft()
        return None

    async def recv(self) -> Broadcast | None:
        """Wait for the next broadcast; ``None`` once closed and drained."""
        while not self._queue:
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()
        return self._queue.popleft()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Broadcast:
        item = await self.recv()
        if item is None:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._wake()
        self._on_close(self.session_id)


class BroadcastHub:
    """Fan-out point between one ``StreamProducer`` and many sessions.

    Membership changes are serialised by a lock. ``subscriber_count`` reads a
    plain counter maintained under that lock and never takes it.
    """

    def __init__(self, capacity: int = 100, encoder: Callable[[Snapshot], str] = encode_snapshot) -> None:
        if capacity < 1:
            raise StartupError(f"broadcast capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._encoder = encoder
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Subscription] = {}
        self._count = 0
        self._sequence = 0
        self._closed = False
        self.stats = HubStats()

    @property
    def subscriber_count(self) -> int:
        return self._count

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, session_id: str | None = None) -> Subscription:
        session_id = session_id or str(uuid.uuid4())
        with self._lock:
            if self._closed:
                raise HubClosedError("broadcast hub is closed")
            if session_id in self._subscriptions:
                raise ValueError(f"session {session_id} is already subscribed")
            subscription = Subscription(session_id, self.capacity, self.unsubscribe)
            self._subscriptions[session_id] = subscription
            self._count = len(self._subscriptions)
        logger.info("subscriber %s connected (%d total)", session_id, self._count)
        return subscription

    def unsubscribe(self, session_id: str) -> bool:
        with self._lock:
            subscription = self._subscriptions.pop(session_id, None)
            self._count = len(self._subscriptions)
        if subscription is None:
            return False
        subscription._wake()
        logger.info("subscriber %s disconnected (%d total)", session_id, self._count)
        return True

    def connected_clients(self) -> list[SubscriberInfo]:
        with self._lock:
            subscriptions = list(self._subscriptions.values())
        return [
            SubscriberInfo(
                session_id=sub.session_id,
                connected_at=sub.connected_at,
                connected_duration_seconds=sub.connected_duration(),
            )
            for sub in subscriptions
        ]

    def publish(self, snapshot: Snapshot) -> int:
        """Deliver ``snapshot`` to every current subscriber; returns the receiver count."""
        if self._closed:
            raise HubClosedError("broadcast hub is closed")
        self._sequence += 1
        self.stats.published += 1
        if self._count == 0:
            self.stats.skipped_empty += 1
            return 0

        item = Broadcast(sequence=self._sequence, snapshot=snapshot, payload=self._encoder(snapshot))
        self.stats.encoded += 1
        with self._lock:
            targets = list(self._subscriptions.values())

        for subscription in targets:
            if subscription._push(item):
                self.stats.dropped += 1
        self.stats.delivered += len(targets)
        return len(targets)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
            self._count = 0
        for subscription in subscriptions:
            subscription._wake()
        logger.info("broadcast hub closed, released %d subscribers", len(subscriptions))
