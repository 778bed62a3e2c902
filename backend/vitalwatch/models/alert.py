from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from vitalwatch.models.base import Base, TimestampMixin


class AlertType(StrEnum):
    heart_rate = "heartRate"
    temperature = "temperature"
    spo2 = "spo2"
    blood_pressure = "bloodPressure"
    device_related = "device-related"
    prediction = "prediction"
    emergency = "emergency"


class AlertSeverity(StrEnum):
    info = "info"
    warning = "warning"
    critical = "critical"
    emergency = "emergency"


class AlertStatus(StrEnum):
    active = "active"
    acknowledged = "acknowledged"
    resolved = "resolved"
    escalated = "escalated"


SEVERITY_RANK = {
    AlertSeverity.info: 0,
    AlertSeverity.warning: 1,
    AlertSeverity.critical: 2,
    AlertSeverity.emergency: 3,
}

_ACTIVE_DEDUP_WHERE = text("status = 'active' AND alert_type <> 'emergency'")


class Alert(Base, TimestampMixin):
    """A raised condition for a patient and its lifecycle metadata.

    At most one row per (patient_id, alert_type) may be ``active`` at a time;
    repeated candidates refresh that row instead of inserting another. Manual
    emergencies are exempt and always get their own row.
    """

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    device_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    alert_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="heartRate|temperature|spo2|bloodPressure|device-related|prediction|emergency",
    )
    severity: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=AlertSeverity.warning,
        comment="info|warning|critical|emergency",
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=AlertStatus.active,
        comment="active|acknowledged|resolved|escalated",
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolution_method: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    escalation_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    escalated_to: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    escalation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    notifications: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    __table_args__ = (
        Index(
            "uq_alerts_active_patient_type",
            "patient_id",
            "alert_type",
            unique=True,
            postgresql_where=_ACTIVE_DEDUP_WHERE,
            sqlite_where=_ACTIVE_DEDUP_WHERE,
        ),
        Index("ix_alerts_status_severity", "status", "severity"),
        Index("ix_alerts_patient_created", "patient_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Alert(alert_id='{self.alert_id}', type='{self.alert_type}', "
            f"status='{self.status}')>"
        )
