"""Normalization of raw device payloads into readings the evaluator can trust.

Devices post either bare numbers (``"heartRate": 72``) or measurement objects
(``"heartRate": {"value": 72, "unit": "bpm", "quality": "good"}``). Both
camelCase and snake_case keys are accepted. Values outside the physical range
of the sensor are kept, flagged ``quality="poor"`` and reported as
``OutOfRangeError`` diagnostics so downstream logic can treat them with care.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from vitalwatch.errors import InvalidValueError, MissingFieldError, OutOfRangeError

SENSOR_RANGES: dict[str, tuple[float, float]] = {
    "heart_rate": (0, 250),
    "temperature": (30, 45),
    "spo2": (0, 100),
    "systolic": (60, 250),
    "diastolic": (40, 150),
}

DEFAULT_UNITS: dict[str, str] = {
    "heart_rate": "bpm",
    "temperature": "°C",
    "spo2": "%",
    "blood_pressure": "mmHg",
}

QUALITY_LEVELS = ("good", "fair", "poor")

_VITAL_KEYS = {
    "heart_rate": ("heartRate", "heart_rate"),
    "temperature": ("temperature",),
    "spo2": ("spo2", "spO2", "SpO2"),
}


@dataclass(frozen=True)
class VitalValue:
    value: float
    unit: str
    quality: str = "good"


@dataclass(frozen=True)
class BloodPressure:
    systolic: Optional[float]
    diastolic: Optional[float]
    unit: str = "mmHg"
    quality: str = "good"


@dataclass(frozen=True)
class DeviceTelemetry:
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    firmware_version: Optional[str] = None


@dataclass
class NormalizedReading:
    """A validated reading with units attached and quality flags set."""

    patient_id: str
    device_id: str
    recorded_at: datetime
    heart_rate: Optional[VitalValue] = None
    temperature: Optional[VitalValue] = None
    spo2: Optional[VitalValue] = None
    blood_pressure: Optional[BloodPressure] = None
    device: Optional[DeviceTelemetry] = None
    range_issues: list[OutOfRangeError] = field(default_factory=list)

    @property
    def has_vitals(self) -> bool:
        return any(
            item is not None
            for item in (self.heart_rate, self.temperature, self.spo2, self.blood_pressure)
        )

    @property
    def poor_quality_vitals(self) -> list[str]:
        names = []
        for name in ("heart_rate", "temperature", "spo2", "blood_pressure"):
            item = getattr(self, name)
            if item is not None and item.quality == "poor":
                names.append(name)
        return names

    def to_record_fields(self) -> dict[str, Any]:
        """Flatten into the column layout used by reading stores."""
        fields: dict[str, Any] = {
            "patient_id": self.patient_id,
            "device_id": self.device_id,
            "recorded_at": self.recorded_at,
        }
        for name in ("heart_rate", "temperature", "spo2"):
            vital = getattr(self, name)
            fields[name] = vital.value if vital else None
            fields[f"{name}_unit"] = vital.unit if vital else None
            fields[f"{name}_quality"] = vital.quality if vital else None
        bp = self.blood_pressure
        fields["systolic"] = bp.systolic if bp else None
        fields["diastolic"] = bp.diastolic if bp else None
        fields["blood_pressure_unit"] = bp.unit if bp else None
        fields["blood_pressure_quality"] = bp.quality if bp else None
        device = self.device or DeviceTelemetry()
        fields["battery_level"] = device.battery_level
        fields["signal_strength"] = device.signal_strength
        fields["firmware_version"] = device.firmware_version
        return fields


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _to_number(field_name: str, raw: Any) -> float:
    if isinstance(raw, bool):
        raise InvalidValueError(field_name, raw)
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            raise InvalidValueError(field_name, raw) from None
    else:
        raise InvalidValueError(field_name, raw)
    if math.isnan(value) or math.isinf(value):
        raise InvalidValueError(field_name, raw)
    return value


def _check_range(
    field_name: str, value: float, issues: list[OutOfRangeError]
) -> bool:
    low, high = SENSOR_RANGES[field_name]
    if low <= value <= high:
        return True
    issues.append(OutOfRangeError(field_name, value, low, high))
    return False


def _supplied_quality(raw: Mapping[str, Any]) -> str:
    quality = raw.get("quality")
    return quality if quality in QUALITY_LEVELS else "good"


def _parse_vital(
    name: str, raw: Any, issues: list[OutOfRangeError]
) -> Optional[VitalValue]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        if raw.get("value") is None:
            return None
        value = _to_number(name, raw["value"])
        unit = raw.get("unit") or DEFAULT_UNITS[name]
        quality = _supplied_quality(raw)
    else:
        value = _to_number(name, raw)
        unit = DEFAULT_UNITS[name]
        quality = "good"
    if not _check_range(name, value, issues):
        quality = "poor"
    return VitalValue(value=value, unit=unit, quality=quality)


def _parse_blood_pressure(
    raw: Any, issues: list[OutOfRangeError]
) -> Optional[BloodPressure]:
    if not isinstance(raw, Mapping):
        if raw is None:
            return None
        raise InvalidValueError("blood_pressure", raw)
    readings: dict[str, Optional[float]] = {}
    in_range = True
    for part in ("systolic", "diastolic"):
        if raw.get(part) is None:
            readings[part] = None
            continue
        value = _to_number(part, raw[part])
        readings[part] = value
        in_range = _check_range(part, value, issues) and in_range
    if readings["systolic"] is None and readings["diastolic"] is None:
        return None
    return BloodPressure(
        systolic=readings["systolic"],
        diastolic=readings["diastolic"],
        unit=raw.get("unit") or DEFAULT_UNITS["blood_pressure"],
        quality=_supplied_quality(raw) if in_range else "poor",
    )


def _parse_device(payload: Mapping[str, Any]) -> Optional[DeviceTelemetry]:
    raw = _first(payload, "metadata", "device")
    if not isinstance(raw, Mapping):
        return None
    battery = _first(raw, "batteryLevel", "battery_level")
    signal = _first(raw, "signalStrength", "signal_strength")
    firmware = _first(raw, "firmwareVersion", "firmware_version", "firmware")
    if battery is None and signal is None and firmware is None:
        return None
    return DeviceTelemetry(
        battery_level=_to_number("battery_level", battery) if battery is not None else None,
        signal_strength=_to_number("signal_strength", signal) if signal is not None else None,
        firmware_version=str(firmware) if firmware is not None else None,
    )


def _parse_timestamp(raw: Any, clock: Callable[[], datetime]) -> datetime:
    if raw is None:
        return clock()
    if isinstance(raw, datetime):
        parsed = raw
    else:
        try:
            parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            raise InvalidValueError("timestamp", raw) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def validate(
    payload: Mapping[str, Any],
    *,
    strict: bool = False,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> NormalizedReading:
    """Normalize a raw ingestion payload.

    Raises ``MissingFieldError`` when patient or device id is absent and
    ``InvalidValueError`` for non-numeric vitals. With ``strict=True`` the
    first out-of-range value is raised as ``OutOfRangeError`` instead of
    being flagged.
    """
    patient_id = _first(payload, "patientId", "patient_id")
    if patient_id is None or str(patient_id).strip() == "":
        raise MissingFieldError("patientId")
    device_id = _first(payload, "deviceId", "device_id")
    if device_id is None or str(device_id).strip() == "":
        raise MissingFieldError("deviceId")

    issues: list[OutOfRangeError] = []
    vitals = {
        name: _parse_vital(name, _first(payload, *keys), issues)
        for name, keys in _VITAL_KEYS.items()
    }
    blood_pressure = _parse_blood_pressure(
        _first(payload, "bloodPressure", "blood_pressure"), issues
    )
    if strict and issues:
        raise issues[0]

    return NormalizedReading(
        patient_id=str(patient_id),
        device_id=str(device_id),
        recorded_at=_parse_timestamp(payload.get("timestamp"), clock),
        blood_pressure=blood_pressure,
        device=_parse_device(payload),
        range_issues=issues,
        **vitals,
    )
