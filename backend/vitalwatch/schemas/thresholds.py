"""Schemas for per-patient thresholds and notification contacts."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class BandSettings(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    critical_min: Optional[float] = None
    critical_max: Optional[float] = None

    @model_validator(mode="after")
    def check_ordering(self) -> "BandSettings":
        ordered = [
            value
            for value in (self.critical_min, self.min, self.max, self.critical_max)
            if value is not None
        ]
        if ordered != sorted(ordered):
            raise ValueError(
                "Bounds must satisfy critical_min <= min <= max <= critical_max"
            )
        return self


class BloodPressureSettings(BaseModel):
    systolic_max: Optional[float] = Field(default=None, gt=0)
    diastolic_max: Optional[float] = Field(default=None, gt=0)
    systolic_critical: Optional[float] = Field(default=None, gt=0)
    diastolic_critical: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_ordering(self) -> "BloodPressureSettings":
        for warn, crit in (
            (self.systolic_max, self.systolic_critical),
            (self.diastolic_max, self.diastolic_critical),
        ):
            if warn is not None and crit is not None and crit < warn:
                raise ValueError("Critical limits must not be below warning limits")
        return self


class ThresholdSettings(BaseModel):
    heart_rate: Optional[BandSettings] = None
    temperature: Optional[BandSettings] = None
    spo2: Optional[BandSettings] = None
    blood_pressure: Optional[BloodPressureSettings] = None


class ThresholdResponse(BaseModel):
    patient_id: str
    is_default: bool
    overrides: dict[str, Any] = Field(default_factory=dict)
    effective: dict[str, Any]


class ContactSettings(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    push_token: Optional[str] = Field(default=None, max_length=255)
    alert_methods: list[Literal["email", "sms", "push", "webhook"]] = Field(
        default_factory=list
    )


class ContactResponse(ContactSettings):
    patient_id: str
