"""WebSocket endpoint for live dashboards.

Clients send ``{"action": "subscribe", "patient_id": "..."}`` to follow one
patient, or ``{"action": "subscribe", "topic": "alerts"}`` for every alert
event. ``unsubscribe`` takes the same fields.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from vitalwatch.api.deps import get_broadcaster
from vitalwatch.services.monitoring.broadcaster import ALERTS_TOPIC, patient_topic

logger = logging.getLogger("vitalwatch.realtime")

router = APIRouter(tags=["Real-time"])

_USAGE = "Expected subscribe/unsubscribe with patient_id or topic 'alerts'"


def _topic_for(message: dict[str, Any]) -> Optional[str]:
    if message.get("patient_id"):
        return patient_topic(str(message["patient_id"]))
    if message.get("topic") == ALERTS_TOPIC:
        return ALERTS_TOPIC
    return None


@router.websocket("/ws")
async def monitoring_socket(websocket: WebSocket, broadcaster=Depends(get_broadcaster)):
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Messages must be JSON"})
                continue
            action = message.get("action") if isinstance(message, dict) else None
            topic = _topic_for(message) if isinstance(message, dict) else None
            if action not in ("subscribe", "unsubscribe") or topic is None:
                await websocket.send_json({"type": "error", "message": _USAGE})
                continue
            if action == "subscribe":
                broadcaster.subscribe(websocket, topic)
            else:
                broadcaster.unsubscribe(websocket, topic)
            await websocket.send_json({"type": f"{action}d", "topic": topic})
    except WebSocketDisconnect:
        logger.info("Dashboard socket disconnected")
    finally:
        broadcaster.disconnect(websocket)
