from datetime import datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from vitalwatch.models.base import Base, TimestampMixin


class ReadingStatus(StrEnum):
    normal = "normal"
    warning = "warning"
    critical = "critical"
    error = "error"


class VitalReading(Base, TimestampMixin):
    """One immutable vital-sign sample posted by a monitoring device."""

    __tablename__ = "vital_readings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    device_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    heart_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    heart_rate_unit: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    heart_rate_quality: Mapped[Optional[str]] = mapped_column(
        String(8), nullable=True, comment="good|fair|poor"
    )
    temperature: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    temperature_unit: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    temperature_quality: Mapped[Optional[str]] = mapped_column(
        String(8), nullable=True, comment="good|fair|poor"
    )
    spo2: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    spo2_unit: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    spo2_quality: Mapped[Optional[str]] = mapped_column(
        String(8), nullable=True, comment="good|fair|poor"
    )
    systolic: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    diastolic: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    blood_pressure_unit: Mapped[Optional[str]] = mapped_column(
        String(16), nullable=True
    )
    blood_pressure_quality: Mapped[Optional[str]] = mapped_column(
        String(8), nullable=True, comment="good|fair|poor"
    )

    battery_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    signal_strength: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    firmware_version: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ReadingStatus.normal,
        comment="normal|warning|critical|error",
    )

    __table_args__ = (
        Index("ix_vital_readings_patient_recorded", "patient_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<VitalReading(id={self.id}, patient_id='{self.patient_id}', "
            f"status='{self.status}')>"
        )
