from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from vitalwatch.models.base import Base, TimestampMixin


class DeviceStatus(StrEnum):
    online = "online"
    offline = "offline"
    maintenance = "maintenance"
    error = "error"
    retired = "retired"


class DeviceType(StrEnum):
    esp32 = "ESP32"
    arduino = "Arduino"
    raspberry_pi = "RaspberryPi"
    custom = "custom"


class Device(Base, TimestampMixin):
    """A monitoring device and its last reported telemetry.

    Devices that post readings before being registered are created on the
    fly, named after their id.
    """

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    device_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=DeviceType.esp32,
        comment="ESP32|Arduino|RaspberryPi|custom",
    )
    patient_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=DeviceStatus.offline,
        comment="online|offline|maintenance|error|retired",
    )
    firmware_version: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    battery_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    signal_strength: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_devices_patient_status", "patient_id", "status"),
        Index("ix_devices_status_last_seen", "status", "last_seen_at"),
    )

    def __repr__(self) -> str:
        return f"<Device(device_id='{self.device_id}', status='{self.status}')>"
