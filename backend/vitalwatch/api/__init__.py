"""API Routes for VitalWatch."""

from vitalwatch.api import (
    alerts,
    devices,
    health,
    predictions,
    readings,
    realtime,
    thresholds,
)

__all__ = [
    "alerts",
    "devices",
    "health",
    "predictions",
    "readings",
    "realtime",
    "thresholds",
]
