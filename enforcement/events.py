"""
Change notifications for offender records.

The repository publishes an ``Event`` whenever a case or notice is created.
Interested parties (an open offender detail view, the dashboard summary
cache) subscribe to topics and receive events in their own mailbox, a
``queue.Queue`` drained on the subscriber's side, so a slow subscriber never
blocks the publisher.

Topics:
    case_created       every new case
    notice_created     every new notice
    offender:{id}      every new case or notice for one offender

Usage::

    bus = EventBus()
    session = OffenderDetailSession(bus, offender_id)
    ...
    if session.needs_refresh():
        reload_offender()
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CASE_CREATED = "case_created"
NOTICE_CREATED = "notice_created"


def offender_topic(offender_id: str) -> str:
    return f"offender:{offender_id}"


@dataclass(frozen=True)
class Event:
    """A created enforcement record."""

    kind: str  # CASE_CREATED | NOTICE_CREATED
    offender_id: str
    record_id: str


class Subscription:
    """A mailbox receiving events for one or more topics.

    With *maxsize* set the mailbox keeps at most that many undrained events;
    later ones are counted in ``dropped`` instead of queued.  A subscriber
    that only needs to know *whether* anything changed uses ``maxsize=1``.
    """

    def __init__(self, bus: "EventBus", topics: tuple[str, ...], maxsize: int = 0) -> None:
        self._bus = bus
        self.topics = topics
        self._mailbox: queue.Queue[Event] = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def _deliver(self, event: Event) -> None:
        try:
            self._mailbox.put_nowait(event)
        except queue.Full:
            self.dropped += 1

    def get(self, timeout: float | None = None) -> Event | None:
        """Block up to *timeout* seconds for the next event, or return None."""
        try:
            return self._mailbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Event]:
        """Return every pending event without blocking."""
        events = []
        while True:
            try:
                events.append(self._mailbox.get_nowait())
            except queue.Empty:
                break
        return events

    def close(self) -> None:
        if not self.closed:
            self._bus._unsubscribe(self)
            self.closed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class EventBus:
    """Thread-safe topic fan-out to subscriber mailboxes."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, *topics: str, maxsize: int = 0) -> Subscription:
        """Open a mailbox on *topics*; ``maxsize=0`` means unbounded."""
        if not topics:
            raise ValueError("subscribe() needs at least one topic")
        if maxsize < 0:
            raise ValueError("maxsize must be >= 0")
        sub = Subscription(self, tuple(topics), maxsize=maxsize)
        with self._lock:
            for topic in topics:
                self._subscribers.setdefault(topic, []).append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            for topic in sub.topics:
                subs = self._subscribers.get(topic, [])
                if sub in subs:
                    subs.remove(sub)
                if not subs:
                    self._subscribers.pop(topic, None)

    def publish(self, topic: str, event: Event) -> int:
        """Deliver *event* to every subscriber of *topic*.

        Returns:
            Number of mailboxes the event was delivered to.
        """
        with self._lock:
            subs = list(self._subscribers.get(topic, ()))
        for sub in subs:
            sub._deliver(event)
        logger.debug("published topic=%s kind=%s offender=%s subscribers=%d",
                     topic, event.kind, event.offender_id, len(subs))
        return len(subs)

    def publish_record(self, event: Event) -> None:
        """Publish on the event's kind topic and on its offender topic."""
        self.publish(event.kind, event)
        self.publish(offender_topic(event.offender_id), event)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))


class OffenderDetailSession:
    """Subscription held by one open offender detail view.

    Listens on its offender's topic only.  One pending event is enough to
    know a refresh is due, so the mailbox holds at most one.
    """

    def __init__(self, bus: EventBus, offender_id: str) -> None:
        self.offender_id = offender_id
        self._subscription = bus.subscribe(offender_topic(offender_id), maxsize=1)

    def needs_refresh(self) -> bool:
        """True if any case or notice for this offender arrived since last asked."""
        return bool(self._subscription.drain())

    def close(self) -> None:
        self._subscription.close()

    def __enter__(self) -> "OffenderDetailSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
