"""Schemas for vital-sign readings."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from vitalwatch.schemas.alerts import AlertResponse


class ReadingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    device_id: str
    recorded_at: datetime
    heart_rate: Optional[float] = None
    heart_rate_unit: Optional[str] = None
    heart_rate_quality: Optional[str] = None
    temperature: Optional[float] = None
    temperature_unit: Optional[str] = None
    temperature_quality: Optional[str] = None
    spo2: Optional[float] = None
    spo2_unit: Optional[str] = None
    spo2_quality: Optional[str] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    blood_pressure_unit: Optional[str] = None
    blood_pressure_quality: Optional[str] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    firmware_version: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class IngestResponse(BaseModel):
    reading: ReadingResponse
    status: str
    vitals: dict[str, str] = Field(default_factory=dict)
    alerts: list[AlertResponse] = Field(default_factory=list)
    range_issues: list[str] = Field(default_factory=list)


class BatchIngestRequest(BaseModel):
    readings: list[dict[str, Any]] = Field(..., min_length=1, max_length=500)


class BatchError(BaseModel):
    index: int
    type: str
    message: str


class BatchIngestResponse(BaseModel):
    processed: int
    failed: int
    alerts_raised: int
    errors: list[BatchError] = Field(default_factory=list)


class VitalStats(BaseModel):
    avg: float
    min: float
    max: float


class ReadingSummaryResponse(BaseModel):
    patient_id: str
    period: str
    count: int
    first_reading_at: Optional[datetime] = None
    last_reading_at: Optional[datetime] = None
    vitals: dict[str, Optional[VitalStats]]
    warning_count: int
    critical_count: int
