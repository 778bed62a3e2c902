"""Schemas for risk predictions and anomaly detection."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from vitalwatch.schemas.alerts import AlertResponse


class RiskRequest(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    device_id: Optional[str] = Field(default=None, max_length=64)
    window: Optional[int] = Field(default=None, ge=1, le=100)
    raise_alert: bool = True


class RiskFactorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    factor: str
    severity: str
    value: Any = None


class RiskPredictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    prediction_id: str
    patient_id: str
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: str
    factors: list[RiskFactorResponse]
    recommendation: str
    confidence: float
    timestamp: datetime
    readings_analyzed: int
    model_version: str
    features: list[str]


class RiskResponse(BaseModel):
    prediction: RiskPredictionResponse
    alert: Optional[AlertResponse] = None


class AnomalyResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    metric: str
    value: float
    mean: float
    z_score: float
    severity: str


class AnomalyResponse(BaseModel):
    patient_id: str
    analyzed_readings: int
    message: Optional[str] = None
    anomalies: list[AnomalyResponseItem] = Field(default_factory=list)
    statistics: dict[str, dict[str, float]] = Field(default_factory=dict)
