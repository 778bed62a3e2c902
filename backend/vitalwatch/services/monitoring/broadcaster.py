"""Real-time fan-out of readings and alert events to dashboard sessions.

Publishing is fire-and-forget: a subscriber whose socket fails is dropped and
simply misses later updates.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger("vitalwatch.broadcaster")

ALERTS_TOPIC = "alerts"


def patient_topic(patient_id: str) -> str:
    return f"patient-{patient_id}"


class Broadcaster(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        ...


class Subscriber(Protocol):
    async def send_text(self, data: str) -> None:
        ...


class WebSocketBroadcaster:
    """Topic rooms over accepted WebSocket connections."""

    def __init__(self):
        self.rooms: dict[str, set[Any]] = defaultdict(set)
        self.subscriptions: dict[Any, set[str]] = defaultdict(set)

    def subscribe(self, websocket: Subscriber, topic: str) -> None:
        self.rooms[topic].add(websocket)
        self.subscriptions[websocket].add(topic)
        logger.info("Subscriber joined %s (%d in room)", topic, len(self.rooms[topic]))

    def unsubscribe(self, websocket: Subscriber, topic: str) -> None:
        self.rooms.get(topic, set()).discard(websocket)
        self.subscriptions.get(websocket, set()).discard(topic)
        if topic in self.rooms and not self.rooms[topic]:
            del self.rooms[topic]

    def disconnect(self, websocket: Subscriber) -> None:
        for topic in list(self.subscriptions.pop(websocket, set())):
            self.rooms.get(topic, set()).discard(websocket)
            if topic in self.rooms and not self.rooms[topic]:
                del self.rooms[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self.rooms.get(topic, ()))

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        subscribers = list(self.rooms.get(topic, ()))
        if not subscribers:
            return
        message = json.dumps(
            {
                "topic": topic,
                "sent_at": datetime.now(UTC).isoformat(),
                **payload,
            },
            default=str,
        )
        for websocket in subscribers:
            try:
                await websocket.send_text(message)
            except Exception as exc:
                logger.warning(
                    "Dropping subscriber on %s after send failure (%s)",
                    topic,
                    exc.__class__.__name__,
                )
                self.disconnect(websocket)


class RecordingBroadcaster:
    """Keeps published events in memory instead of sending them."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.events.append((topic, payload))

    def events_for(self, topic: str) -> list[dict[str, Any]]:
        return [payload for item_topic, payload in self.events if item_topic == topic]
