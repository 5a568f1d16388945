"""Explicit publish/subscribe channel between the fetch layer and the views."""
from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

ARTICLE_CREATED = "article:created"
SALE_CREATED = "sale:created"
MOVEMENT_CREATED = "movement:created"
AUTH_UNAUTHORIZED = "auth:unauthorized"

CREATION_TOPICS = (ARTICLE_CREATED, SALE_CREATED, MOVEMENT_CREATED)

Handler = Callable[[Any], None]


class EventChannel:
    """Synchronous in-process message channel.

    Handlers run in subscription order on the publishing thread. A handler that
    raises is logged and skipped so one broken view cannot stop the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        self._handlers[topic].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        handlers = list(self._handlers.get(topic, ()))
        logger.debug("Publishing %s to %s handler(s)", topic, len(handlers))
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", topic)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, ()))


class ActivityFeed:
    """Bounded list of recent creations shown on the dashboard."""

    LABELS = {
        ARTICLE_CREATED: "Artículo creado",
        SALE_CREATED: "Venta registrada",
        MOVEMENT_CREATED: "Movimiento registrado",
    }

    def __init__(self, maxlen: int = 20) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=maxlen)

    def attach(self, channel: EventChannel) -> None:
        for topic in CREATION_TOPICS:
            channel.subscribe(topic, self._recorder(topic))

    def _recorder(self, topic: str) -> Handler:
        def _record(payload: Any) -> None:
            summary = payload
            if hasattr(payload, "model_dump"):
                summary = payload.model_dump(mode="json")
            self._entries.appendleft(
                {
                    "topic": topic,
                    "label": self.LABELS.get(topic, topic),
                    "at": datetime.now(timezone.utc).isoformat(),
                    "payload": summary,
                }
            )

        return _record

    def recent(self, limit: int | None = None) -> list[dict[str, Any]]:
        entries = list(self._entries)
        return entries[:limit] if limit else entries


__all__ = [
    "ARTICLE_CREATED",
    "AUTH_UNAUTHORIZED",
    "ActivityFeed",
    "CREATION_TOPICS",
    "EventChannel",
    "MOVEMENT_CREATED",
    "SALE_CREATED",
]
