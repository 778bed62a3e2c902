"""Device presence helpers shared by ingestion and the device routes."""

from __future__ import annotations

import uuid
from dataclasses import asdict
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from vitalwatch.models import DeviceStatus
from vitalwatch.services.monitoring.validator import NormalizedReading


def new_device_id(now: datetime) -> str:
    return f"DEV-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def is_online(device: Any, now: datetime, offline_after: timedelta) -> bool:
    """Online means reported ``online`` and heard from within ``offline_after``."""
    if device.status != DeviceStatus.online or device.last_seen_at is None:
        return False
    last_seen = device.last_seen_at
    if last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=UTC)
    return now - last_seen < offline_after


def reading_telemetry(reading: NormalizedReading) -> Optional[dict[str, Any]]:
    return asdict(reading.device) if reading.device is not None else None


def reading_snapshot(reading: NormalizedReading) -> dict[str, Any]:
    """The latest vitals kept on the device record."""
    bp = reading.blood_pressure
    return {
        "timestamp": reading.recorded_at.isoformat(),
        "heart_rate": reading.heart_rate.value if reading.heart_rate else None,
        "temperature": reading.temperature.value if reading.temperature else None,
        "spo2": reading.spo2.value if reading.spo2 else None,
        "systolic": bp.systolic if bp else None,
        "diastolic": bp.diastolic if bp else None,
    }
