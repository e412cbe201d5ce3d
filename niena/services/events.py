"""
Per-user server-sent events.

Subscribers are asyncio queues living on the server's event loop.
Background workflows run in FastAPI's worker threads, so emit() hands
events to the loop with call_soon_threadsafe instead of touching the
queues directly.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)


class EventType:
    RESUME_READY = "RESUME_READY"
    RESUME_FAILED = "RESUME_FAILED"
    TAILORED_RESUME_READY = "TAILORED_RESUME_READY"
    TAILORED_RESUME_FAILED = "TAILORED_RESUME_FAILED"
    COVER_LETTER_READY = "COVER_LETTER_READY"
    INTERVIEW_READY = "INTERVIEW_READY"
    NEW_NOTIFICATION = "NEW_NOTIFICATION"
    PING = "PING"


def make_event(event_type: str, data: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "type": event_type,
        "data": data or {},
        "timestamp": datetime.utcnow().isoformat()
    }


class EventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[int, List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}

    def subscribe(self, user_id: int, loop: asyncio.AbstractEventLoop = None) -> asyncio.Queue:
        """Register a queue for a user. Must be called from the loop that reads it."""
        loop = loop or asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._subscribers.setdefault(user_id, []).append((loop, queue))
        logger.debug("User %s subscribed to events", user_id)
        return queue

    def unsubscribe(self, user_id: int, queue: asyncio.Queue) -> None:
        with self._lock:
            entries = self._subscribers.get(user_id, [])
            remaining = [(loop, q) for loop, q in entries if q is not queue]
            if remaining:
                self._subscribers[user_id] = remaining
            else:
                self._subscribers.pop(user_id, None)

    def subscriber_count(self, user_id: int = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._subscribers.get(user_id, []))
            return sum(len(entries) for entries in self._subscribers.values())

    def emit(self, user_id: int, event: Dict[str, Any]) -> int:
        """
        Send an event to every open stream of one user.

        Returns:
            Number of streams the event was delivered to
        """
        with self._lock:
            entries = list(self._subscribers.get(user_id, []))

        delivered = 0
        for loop, queue in entries:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(queue.put_nowait, event)
            delivered += 1

        logger.debug("Event %s sent to %d stream(s) of user %s", event.get("type"), delivered, user_id)
        return delivered

    def broadcast(self, event: Dict[str, Any]) -> int:
        with self._lock:
            user_ids = list(self._subscribers.keys())
        return sum(self.emit(user_id, event) for user_id in user_ids)


# Singleton instance
_event_bus: EventBus = None


def get_event_bus() -> EventBus:
    """Get or create the process-wide event bus (singleton pattern)"""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def emit_to_user(user_id: int, event_type: str, data: Dict[str, Any] = None) -> int:
    return get_event_bus().emit(user_id, make_event(event_type, data))
