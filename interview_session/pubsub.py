"""
Session event stream.

In-memory pub/sub used by the lifecycle controller to surface state changes,
conversation turns, user-facing notices and final results to whatever UI is
hosting the interview.

Example usage:
    publisher = get_publisher()
    queue = await publisher.subscribe()
    publisher.publish_nowait(SessionEvent(SessionEventType.NOTICE, "int_...", "Connection error."))
    event = await queue.get()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SessionEventType(str, Enum):
    """
    Types of events published on the stream.

    Attributes:
        STATE: Session moved to a new lifecycle state.
        TURN: A conversation turn was appended.
        NOTICE: Dismissible user-facing notice (recoverable error).
        RESULT: Session ended with a verdict.
    """

    STATE = "state"
    TURN = "turn"
    NOTICE = "notice"
    RESULT = "result"


def _get_utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SessionEvent:
    """
    A single published event.

    Attributes:
        event_type: Category of the event.
        session_id: Session the event belongs to.
        content: Human readable summary or notice text.
        timestamp: UTC timestamp when the event was created.
        error_code: Machine-readable code for NOTICE events.
        payload: Extra structured data (state, turn, outcome).
    """

    event_type: SessionEventType
    session_id: str
    content: str
    timestamp: str = field(default_factory=_get_utc_timestamp)
    error_code: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "session_id": self.session_id,
            "content": self.content,
            "timestamp": self.timestamp,
            "error_code": self.error_code,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class SessionEventPublisher:
    """
    Broadcasts session events to every subscriber queue.

    Keeps a bounded history that is replayed to new subscribers. The
    controller publishes from synchronous callbacks, so ``publish_nowait``
    is the primary entry point; subscriber queues are unbounded and never
    block.

    Example:
        publisher = SessionEventPublisher()
        queue = await publisher.subscribe()
        await publisher.publish(event)
        received = await queue.get()
    """

    def __init__(self, max_history: int = 200) -> None:
        """
        Initialize the publisher.

        Args:
            max_history: Maximum number of events to retain in history.
        """
        self._subscribers: list[asyncio.Queue[SessionEvent]] = []
        self._history: list[SessionEvent] = []
        self._max_history = max_history
        self._lock = asyncio.Lock()
        logger.debug("SessionEventPublisher initialized with max_history=%d", max_history)

    async def subscribe(self) -> asyncio.Queue[SessionEvent]:
        """
        Subscribe to session events.

        Returns:
            Queue that receives the history and then every new event.
        """
        queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
            for event in self._history:
                queue.put_nowait(event)
        logger.debug("New subscriber added. Total: %d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[SessionEvent]) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)
        logger.debug("Subscriber removed. Total: %d", len(self._subscribers))

    def publish_nowait(self, event: SessionEvent) -> None:
        """
        Publish an event without awaiting.

        Safe to call from synchronous callbacks on the event loop thread.
        """
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]

        for queue in self._subscribers:
            queue.put_nowait(event)

        logger.debug("Published %s event for %s", event.event_type.value, event.session_id)

    async def publish(self, event: SessionEvent) -> None:
        """Publish an event while holding the subscriber lock."""
        async with self._lock:
            self.publish_nowait(event)

    async def get_history(self) -> list[SessionEvent]:
        """Copy of the event history."""
        async with self._lock:
            return list(self._history)

    def history_for(self, session_id: str) -> list[SessionEvent]:
        """Events recorded for one session, oldest first."""
        return [event for event in self._history if event.session_id == session_id]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


# Global publisher instance
_publisher: SessionEventPublisher | None = None


def get_publisher() -> SessionEventPublisher:
    """
    Get the global publisher instance.

    Creates a new publisher if one doesn't exist.
    """
    global _publisher
    if _publisher is None:
        _publisher = SessionEventPublisher()
    return _publisher


def reset_publisher() -> None:
    """
    Reset the global publisher instance.

    Primarily useful for testing to ensure a clean state between tests.
    """
    global _publisher
    _publisher = None
    logger.debug("Global publisher reset")
