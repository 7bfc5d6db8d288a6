"""Notification bus for ClipShelf.

Listeners subscribe to a bounded queue of events. Delivery is lossy: when a
subscriber falls behind, its oldest pending event is dropped. Every event only
tells the listener that something changed, so re-fetching the item list is
always enough to catch up.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

ITEM_CREATED = "item-created"
ITEM_UPDATED = "item-updated"
ITEM_DELETED = "item-deleted"
SUGGESTION_READY = "suggestion-ready"
ENRICHMENT_FAILED = "enrichment-failed"
SESSION_OPENED = "session-opened"
SESSION_CLOSED = "session-closed"


@dataclass(frozen=True)
class Event:
    kind: str
    item_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "item_id": self.item_id,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


class Subscription:

    def __init__(self, bus: "NotificationBus", maxsize: int) -> None:
        self._bus = bus
        self._queue: "queue.Queue[Event]" = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.dropped = 0
        self.closed = False

    def _offer(self, event: Event) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(event)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        pass

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or ``None`` when ``timeout`` passes first."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Event]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self.closed = True
        self._bus._remove(self)

    def __iter__(self) -> Iterator[Event]:
        while not self.closed:
            event = self.get(timeout=0.25)
            if event is not None:
                yield event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class NotificationBus:

    def __init__(self, default_maxsize: int = 256) -> None:
        self.default_maxsize = default_maxsize
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, maxsize or self.default_maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, kind: str, item_id: Optional[str] = None, /, **payload: Any) -> Event:
        """Deliver an event to every subscriber.

        ``kind`` and ``item_id`` are positional-only, so a payload may carry
        its own ``kind`` key.
        """
        event = Event(kind=kind, item_id=item_id, payload=payload)
        # Delivery happens under the lock so concurrent publishers cannot
        # reorder events between subscribers.
        with self._lock:
            for subscription in self._subscribers:
                subscription._offer(event)
        logger.debug("Published %s (item=%s)", kind, item_id)
        return event

    def listen(self, callback: Callable[[Event], None],
               maxsize: Optional[int] = None) -> Callable[[], None]:
        """Run ``callback`` for every event on a daemon thread.

        Returns a function that stops the listener.
        """
        subscription = self.subscribe(maxsize)

        def _pump() -> None:
            for event in subscription:
                try:
                    callback(event)
                except Exception:
                    logger.exception("Event listener failed on %s", event.kind)

        thread = threading.Thread(target=_pump, name="clipshelf-listener", daemon=True)
        thread.start()

        def _stop() -> None:
            subscription.close()
            thread.join(timeout=1.0)

        return _stop

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
