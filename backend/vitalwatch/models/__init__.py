from vitalwatch.models.alert import (
    SEVERITY_RANK,
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertType,
)
from vitalwatch.models.base import Base, TimestampMixin
from vitalwatch.models.device import Device, DeviceStatus, DeviceType
from vitalwatch.models.patient import PatientAlertSettings
from vitalwatch.models.reading import ReadingStatus, VitalReading

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Models
    "VitalReading",
    "Alert",
    "Device",
    "PatientAlertSettings",
    # Enums
    "ReadingStatus",
    "AlertType",
    "AlertSeverity",
    "AlertStatus",
    "DeviceStatus",
    "DeviceType",
    "SEVERITY_RANK",
]
