"""Schemas for the device registry."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DeviceTypeName = Literal["ESP32", "Arduino", "RaspberryPi", "custom"]
DeviceStatusName = Literal["online", "offline", "maintenance", "error", "retired"]


class DeviceCreate(BaseModel):
    device_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Generated when omitted",
    )
    name: str = Field(..., min_length=1, max_length=120)
    device_type: DeviceTypeName = "ESP32"
    patient_id: Optional[str] = Field(default=None, max_length=64)
    firmware_version: Optional[str] = Field(default=None, max_length=32)


class DeviceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    device_type: Optional[DeviceTypeName] = None
    patient_id: Optional[str] = Field(default=None, max_length=64)
    firmware_version: Optional[str] = Field(default=None, max_length=32)


class DeviceStatusUpdate(BaseModel):
    status: DeviceStatusName


class DeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    device_id: str
    name: str
    device_type: str
    patient_id: Optional[str] = None
    status: str
    online: bool = False
    firmware_version: Optional[str] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    last_seen_at: Optional[datetime] = None
    last_data: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    total: int
    limit: int
    skip: int


class DeviceListResponse(BaseModel):
    devices: list[DeviceResponse]
    pagination: Pagination


class DeviceStatsResponse(BaseModel):
    status_counts: dict[str, int] = Field(default_factory=dict)
    total: int
    online: int
