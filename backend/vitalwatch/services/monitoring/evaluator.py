"""Threshold evaluation of a normalized reading."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from vitalwatch.models import AlertSeverity, AlertType, ReadingStatus
from vitalwatch.services.monitoring.thresholds import (
    DEFAULT_THRESHOLDS,
    Band,
    ThresholdConfig,
    merge_thresholds,
)
from vitalwatch.services.monitoring.validator import NormalizedReading

_STATUS_RANK = {
    ReadingStatus.normal: 0,
    ReadingStatus.warning: 1,
    ReadingStatus.critical: 2,
}

_VITAL_LABELS = {
    "heart_rate": ("heart rate", AlertType.heart_rate),
    "temperature": ("temperature", AlertType.temperature),
    "spo2": ("blood oxygen", AlertType.spo2),
}

_TITLES = {
    ("heart_rate", "high"): "High Heart Rate Detected",
    ("heart_rate", "low"): "Low Heart Rate Detected",
    ("temperature", "high"): "Elevated Temperature",
    ("temperature", "low"): "Low Temperature",
    ("spo2", "high"): "Abnormal Blood Oxygen",
    ("spo2", "low"): "Low Blood Oxygen",
}


@dataclass
class AlertCandidate:
    """An unpersisted description of an abnormal condition."""

    alert_type: str
    severity: str
    title: str
    message: str
    value: Any = None
    threshold: Any = None
    unit: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "threshold": self.threshold,
            "unit": self.unit,
            **self.extra,
        }


@dataclass
class Evaluation:
    status: str
    vitals: dict[str, str] = field(default_factory=dict)
    alerts: list[AlertCandidate] = field(default_factory=list)


def _fmt(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:g}"


def classify(value: float, band: Band) -> tuple[str, Optional[float], Optional[str]]:
    """Return (severity, crossed bound, direction) for one value."""
    if band.critical_max is not None and value > band.critical_max:
        return ReadingStatus.critical, band.critical_max, "high"
    if band.critical_min is not None and value < band.critical_min:
        return ReadingStatus.critical, band.critical_min, "low"
    if band.max is not None and value > band.max:
        return ReadingStatus.warning, band.max, "high"
    if band.min is not None and value < band.min:
        return ReadingStatus.warning, band.min, "low"
    return ReadingStatus.normal, None, None


def _cap(severity: str, quality: str, dampen: bool) -> tuple[str, bool]:
    if dampen and quality == "poor" and severity == ReadingStatus.critical:
        return ReadingStatus.warning, True
    return severity, False


def _max_status(*statuses: str) -> str:
    return max(statuses, key=lambda item: _STATUS_RANK[item])


def _evaluate_bp(
    reading: NormalizedReading, config: ThresholdConfig, dampen: bool
) -> tuple[str, Optional[AlertCandidate]]:
    bp = reading.blood_pressure
    limits = config.blood_pressure
    parts = []
    for name, value, warn, crit in (
        ("systolic", bp.systolic, limits.systolic_max, limits.systolic_critical),
        ("diastolic", bp.diastolic, limits.diastolic_max, limits.diastolic_critical),
    ):
        if value is None:
            continue
        severity, bound, _ = classify(value, Band(max=warn, critical_max=crit))
        parts.append((name, value, severity, bound))

    raw = _max_status(ReadingStatus.normal, *(item[2] for item in parts))
    severity, dampened = _cap(raw, bp.quality, dampen)
    if severity == ReadingStatus.normal:
        return severity, None

    abnormal = [item for item in parts if item[2] != ReadingStatus.normal]
    detail = ", ".join(f"{name} {_fmt(value)} > {_fmt(bound)}" for name, value, _, bound in abnormal)
    candidate = AlertCandidate(
        alert_type=AlertType.blood_pressure,
        severity=severity,
        title="High Blood Pressure",
        message=(
            f"High blood pressure: {_fmt(bp.systolic)}/{_fmt(bp.diastolic)} {bp.unit} "
            f"({detail})"
        ),
        value={"systolic": bp.systolic, "diastolic": bp.diastolic},
        threshold={name: bound for name, _, _, bound in abnormal},
        unit=bp.unit,
        extra={"quality": bp.quality, "dampened": dampened} if dampened else {},
    )
    return severity, candidate


def _device_candidate(
    reading: NormalizedReading, low_battery_threshold: float
) -> Optional[AlertCandidate]:
    messages = []
    severity = None
    battery = reading.device.battery_level if reading.device else None
    if battery is not None and battery < low_battery_threshold:
        severity = AlertSeverity.warning
        messages.append(f"battery at {_fmt(battery)}%")
    suspect = reading.poor_quality_vitals
    if suspect:
        severity = severity or AlertSeverity.info
        messages.append(
            "out-of-range values from " + ", ".join(name.replace("_", " ") for name in suspect)
        )
    if severity is None:
        return None
    title = "Low Device Battery" if severity == AlertSeverity.warning else "Suspect Sensor Reading"
    return AlertCandidate(
        alert_type=AlertType.device_related,
        severity=severity,
        title=title,
        message=f"Device {reading.device_id}: " + "; ".join(messages),
        value=battery,
        threshold=low_battery_threshold if battery is not None else None,
        unit="%" if battery is not None else None,
        extra={
            "suspect_vitals": suspect,
            "range_issues": [str(issue) for issue in reading.range_issues],
        },
    )


def evaluate(
    reading: NormalizedReading,
    thresholds: Union[ThresholdConfig, Mapping[str, Any], None] = None,
    *,
    dampen_poor_quality: bool = True,
    low_battery_threshold: float = 20.0,
) -> Evaluation:
    """Classify each vital and the reading overall.

    A missing config falls back to the defaults; a mapping is treated as a
    partial override. Poor-quality vitals are capped at warning unless
    ``dampen_poor_quality`` is False. Device-related candidates never affect
    the reading status.
    """
    if thresholds is None:
        config = DEFAULT_THRESHOLDS
    elif isinstance(thresholds, ThresholdConfig):
        config = thresholds
    else:
        config = merge_thresholds(thresholds)

    if not reading.has_vitals:
        evaluation = Evaluation(status=ReadingStatus.error)
        device = _device_candidate(reading, low_battery_threshold)
        if device:
            evaluation.alerts.append(device)
        return evaluation

    evaluation = Evaluation(status=ReadingStatus.normal)
    for name, (label, alert_type) in _VITAL_LABELS.items():
        vital = getattr(reading, name)
        if vital is None:
            continue
        band: Band = getattr(config, name)
        raw, bound, direction = classify(vital.value, band)
        severity, dampened = _cap(raw, vital.quality, dampen_poor_quality)
        evaluation.vitals[name] = severity
        if severity == ReadingStatus.normal:
            continue
        if band.min is not None and band.max is not None:
            normal = f"normal: {_fmt(band.min)}-{_fmt(band.max)}"
        elif band.min is not None:
            normal = f"minimum: {_fmt(band.min)}{vital.unit}"
        else:
            normal = f"maximum: {_fmt(band.max)}{vital.unit}"
        extra: dict[str, Any] = {"direction": direction}
        if dampened:
            extra.update(quality=vital.quality, dampened=True)
        evaluation.alerts.append(
            AlertCandidate(
                alert_type=alert_type,
                severity=severity,
                title=_TITLES[(name, direction)],
                message=f"Abnormal {label}: {_fmt(vital.value)} {vital.unit} ({normal})",
                value=vital.value,
                threshold=bound,
                unit=vital.unit,
                extra=extra,
            )
        )

    if reading.blood_pressure is not None:
        severity, candidate = _evaluate_bp(reading, config, dampen_poor_quality)
        evaluation.vitals["blood_pressure"] = severity
        if candidate:
            evaluation.alerts.append(candidate)

    evaluation.status = _max_status(ReadingStatus.normal, *evaluation.vitals.values())

    device = _device_candidate(reading, low_battery_threshold)
    if device:
        evaluation.alerts.append(device)
    return evaluation
