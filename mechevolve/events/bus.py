"""Event bus — in-process pub/sub for engine lifecycle events.

Topics emitted by the engine:

- ``agent.created``       an agent was added to an application
- ``evolution.tracked``   a change event was analysed
- ``evolution.applied``   a suggestion outcome was recorded

Subscribers use fnmatch patterns: ``"evolution.*"`` or ``"*"``.
A failing subscriber is logged and never affects the emitter.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from mechevolve.types import new_id, utcnow

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Awaitable[None]]


class Event(BaseModel):
    id: str = Field(default_factory=new_id)
    topic: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class EventBus:
    """Async pub/sub with wildcard topics and a bounded history."""

    def __init__(self, history_limit: int = 500) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._history: list[Event] = []
        self._history_limit = history_limit

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._subscribers[pattern].append(handler)

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(pattern, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, topic: str, data: dict | None = None, source: str = "") -> Event:
        event = Event(topic=topic, data=data or {}, source=source)
        self._history.append(event)
        del self._history[:-self._history_limit]

        handlers = [
            handler
            for pattern, subscribed in self._subscribers.items()
            if fnmatch.fnmatch(topic, pattern)
            for handler in subscribed
        ]
        if handlers:
            results = await asyncio.gather(
                *(h(event) for h in handlers), return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.warning("Subscriber for %s failed: %s", topic, result)
        return event

    def history(self, topic_filter: str = "*", limit: int = 50) -> list[Event]:
        """Recent events, newest first."""
        events = [e for e in self._history if fnmatch.fnmatch(e.topic, topic_filter)]
        return list(reversed(events[-limit:]))

    @property
    def subscriber_count(self) -> int:
        return sum(len(h) for h in self._subscribers.values())
