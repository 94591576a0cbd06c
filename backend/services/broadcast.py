"""
In-process fan-out of availability and query events to WebSocket clients.

One ``BroadcastHub`` is built per process in ``main.create_app`` and handed
to routes through ``app.state``. Each connected client owns an asyncio queue
bound to the event loop that serves its socket; publishers (sync routes in
the threadpool, or async code on the loop) only enqueue, so publishing never
waits on a slow client.

Delivery is fire-and-forget and at-most-once: a client that is not
registered when an event is published never sees it, and a client whose
queue is full drops the event. Clients recover by reconnecting, which
always starts with a fresh roster snapshot.

Roster messages (the connect snapshot and every status broadcast) are read
and enqueued under one lock, so each subscriber sees rosters in the order
they were read and never ends on an older one.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable


logger = logging.getLogger(__name__)


# Wire event names (kept compatible with the existing web clients).
EVENT_INITIAL_STATUS = "initialStatus"
EVENT_STATUS_UPDATE = "statusUpdate"
EVENT_NEW_QUERY = "newQuery"
EVENT_QUERY_UPDATED = "queryUpdated"


def teacher_group(teacher_id: object) -> str:
    return f"teacher:{teacher_id}"


def student_group(student_id: object) -> str:
    return f"student:{student_id}"


def envelope(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


@dataclass
class Subscriber:
    id: str
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop
    groups: set[str] = field(default_factory=set)


class BroadcastHub:
    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, Subscriber] = {}
        self._groups: dict[str, set[str]] = defaultdict(set)
        # Registry is touched from the event loop and from threadpool workers.
        self._lock = threading.Lock()
        # Held across "read roster, then enqueue" so roster messages leave in read order.
        self._roster_lock = threading.Lock()

    # ---- registry ----

    def register(self, subscriber_id: str, *, groups: Iterable[str] = ()) -> asyncio.Queue:
        """Register a connection; must be called from the loop serving it."""

        loop = asyncio.get_running_loop()
        sub = Subscriber(id=subscriber_id, queue=asyncio.Queue(maxsize=self._queue_size), loop=loop)
        with self._lock:
            if subscriber_id in self._subscribers:
                raise ValueError(f"subscriber {subscriber_id!r} already registered")
            self._subscribers[subscriber_id] = sub
            for group in groups:
                sub.groups.add(group)
                self._groups[group].add(subscriber_id)
        logger.debug("Subscriber connected id=%s groups=%s", subscriber_id, sorted(sub.groups))
        return sub.queue

    def unregister(self, subscriber_id: str) -> None:
        with self._lock:
            sub = self._subscribers.pop(subscriber_id, None)
            if sub is None:
                return
            for group in sub.groups:
                members = self._groups.get(group)
                if members is None:
                    continue
                members.discard(subscriber_id)
                if not members:
                    del self._groups[group]
        logger.debug("Subscriber disconnected id=%s", subscriber_id)

    def join(self, subscriber_id: str, group: str) -> None:
        with self._lock:
            sub = self._subscribers.get(subscriber_id)
            if sub is None:
                raise KeyError(subscriber_id)
            sub.groups.add(group)
            self._groups[group].add(subscriber_id)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def group_members(self, group: str) -> set[str]:
        with self._lock:
            return set(self._groups.get(group, ()))

    # ---- delivery ----

    def send(self, subscriber_id: str, event: str, data: Any) -> bool:
        with self._lock:
            sub = self._subscribers.get(subscriber_id)
        if sub is None:
            return False
        return self._deliver(sub, envelope(event, data))

    def publish(self, event: str, data: Any) -> int:
        with self._lock:
            targets = list(self._subscribers.values())
        message = envelope(event, data)
        return sum(1 for sub in targets if self._deliver(sub, message))

    def publish_to_group(self, group: str, event: str, data: Any) -> int:
        with self._lock:
            targets = [self._subscribers[sid] for sid in self._groups.get(group, ()) if sid in self._subscribers]
        message = envelope(event, data)
        return sum(1 for sub in targets if self._deliver(sub, message))

    def publish_roster(self, roster: list[dict[str, Any]]) -> int:
        delivered = self.publish(EVENT_STATUS_UPDATE, roster)
        logger.debug("Roster broadcast teachers=%d subscribers=%d", len(roster), delivered)
        return delivered

    def publish_roster_from(self, load_roster: Callable[[], list[dict[str, Any]]]) -> int:
        """Read the roster and broadcast it as one step relative to other roster sends.

        Blocking; call from a worker thread, never from the event loop.
        """

        with self._roster_lock:
            return self.publish_roster(load_roster())

    def send_roster_snapshot(self, subscriber_id: str, load_roster: Callable[[], list[dict[str, Any]]]) -> bool:
        # A broadcast committed while the snapshot is read waits and lands after it.
        with self._roster_lock:
            return self.send(subscriber_id, EVENT_INITIAL_STATUS, load_roster())

    def _deliver(self, sub: Subscriber, message: dict[str, Any]) -> bool:
        try:
            sub.loop.call_soon_threadsafe(self._enqueue, sub, message)
        except RuntimeError:
            # Loop already closed; the socket is gone and unregister will follow.
            logger.debug("Dropping event for closed subscriber id=%s", sub.id)
            return False
        return True

    @staticmethod
    def _enqueue(sub: Subscriber, message: dict[str, Any]) -> None:
        try:
            sub.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Subscriber queue full; dropping %s for id=%s", message.get("event"), sub.id)
