from typing import Any, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from vitalwatch.models.base import Base, TimestampMixin


class PatientAlertSettings(Base, TimestampMixin):
    """Per-patient threshold overrides and notification contact preferences.

    ``thresholds`` holds a partial override document; any band or bound left
    out falls back to the global defaults at evaluation time.
    """

    __tablename__ = "patient_alert_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    thresholds: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    push_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    alert_methods: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="subset of email|sms|push|webhook",
    )

    def __repr__(self) -> str:
        return f"<PatientAlertSettings(patient_id='{self.patient_id}')>"
