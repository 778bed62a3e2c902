"""Schemas for alerts and their lifecycle transitions."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: str
    patient_id: str
    device_id: Optional[str] = None
    alert_type: str
    severity: str
    status: str
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    occurrence_count: int = 1
    last_triggered_at: datetime
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_method: Optional[str] = None
    resolution_notes: Optional[str] = None
    escalation_level: Optional[int] = None
    escalated_to: Optional[str] = None
    escalation_reason: Optional[str] = None
    escalated_at: Optional[datetime] = None
    notifications: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AcknowledgeRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)


class ResolveRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    method: Optional[str] = Field(
        default=None,
        max_length=64,
        description="e.g. manual|automatic|medical_intervention|false_alarm",
    )
    notes: Optional[str] = Field(default=None, max_length=2000)


class EscalateRequest(BaseModel):
    level: int = Field(default=1, ge=1, le=5)
    escalated_to: Optional[str] = Field(default=None, max_length=120)
    reason: Optional[str] = Field(default=None, max_length=2000)


class EmergencyRequest(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    device_id: Optional[str] = Field(default=None, max_length=64)
    message: str = Field(
        default="Emergency assistance requested", min_length=1, max_length=2000
    )
    location: Optional[dict[str, Any]] = None


class AlertStatistics(BaseModel):
    period_days: int
    total: int
    by_type: dict[str, int]
    by_severity: dict[str, int]
    by_status: dict[str, int]
    avg_resolution_seconds: Optional[float] = None
