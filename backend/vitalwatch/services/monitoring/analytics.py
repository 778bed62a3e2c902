"""Read-side aggregations: reading summaries, alert statistics, anomalies."""

from __future__ import annotations

import statistics
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

SUMMARY_PERIODS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

SUMMARY_VITALS = ("heart_rate", "temperature", "spo2", "systolic", "diastolic")
ANOMALY_VITALS = ("heart_rate", "temperature", "spo2")
MIN_ANOMALY_READINGS = 10
MAX_ANOMALIES = 20


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo:
        return value
    return value.replace(tzinfo=UTC)


def summarize_readings(readings: Sequence[Any], period: str = "24h") -> dict[str, Any]:
    """Average/min/max per vital plus warning and critical counts."""
    vitals: dict[str, Optional[dict[str, float]]] = {}
    for name in SUMMARY_VITALS:
        values = [getattr(r, name) for r in readings if getattr(r, name) is not None]
        vitals[name] = (
            {
                "avg": round(sum(values) / len(values), 2),
                "min": min(values),
                "max": max(values),
            }
            if values
            else None
        )
    timestamps = [_aware(r.recorded_at) for r in readings]
    return {
        "period": period,
        "count": len(readings),
        "first_reading_at": min(timestamps) if timestamps else None,
        "last_reading_at": max(timestamps) if timestamps else None,
        "vitals": vitals,
        "warning_count": sum(1 for r in readings if r.status == "warning"),
        "critical_count": sum(1 for r in readings if r.status == "critical"),
    }


def alert_statistics(alerts: Sequence[Any], period_days: int = 7) -> dict[str, Any]:
    """Counts by type, severity and status with mean time to resolution."""
    durations = [
        (_aware(a.resolved_at) - _aware(a.created_at)).total_seconds()
        for a in alerts
        if a.resolved_at is not None and a.created_at is not None
    ]
    return {
        "period_days": period_days,
        "total": len(alerts),
        "by_type": dict(Counter(a.alert_type for a in alerts)),
        "by_severity": dict(Counter(a.severity for a in alerts)),
        "by_status": dict(Counter(a.status for a in alerts)),
        "avg_resolution_seconds": (
            round(sum(durations) / len(durations), 1) if durations else None
        ),
    }


@dataclass
class Anomaly:
    timestamp: datetime
    metric: str
    value: float
    mean: float
    z_score: float
    severity: str


@dataclass
class AnomalyReport:
    analyzed_readings: int
    sufficient_data: bool
    anomalies: list[Anomaly] = field(default_factory=list)
    statistics: dict[str, dict[str, float]] = field(default_factory=dict)


def detect_anomalies(
    readings: Sequence[Any], z_threshold: float = 2.0
) -> AnomalyReport:
    """Flag vitals more than ``z_threshold`` population deviations from the mean.

    Needs at least 10 readings; returns at most 20 anomalies, newest first.
    A z-score above 3 is reported as high severity.
    """
    if len(readings) < MIN_ANOMALY_READINGS:
        return AnomalyReport(analyzed_readings=len(readings), sufficient_data=False)

    stats: dict[str, dict[str, float]] = {}
    for name in ANOMALY_VITALS:
        values = [getattr(r, name) for r in readings if getattr(r, name)]
        if values:
            stats[name] = {"mean": statistics.fmean(values), "std": statistics.pstdev(values)}

    anomalies: list[Anomaly] = []
    for reading in readings:
        for name, summary in stats.items():
            value = getattr(reading, name)
            if not value:
                continue
            z_score = abs(value - summary["mean"]) / (summary["std"] or 1)
            if z_score > z_threshold:
                anomalies.append(
                    Anomaly(
                        timestamp=_aware(reading.recorded_at),
                        metric=name,
                        value=value,
                        mean=round(summary["mean"], 2),
                        z_score=round(z_score, 2),
                        severity="high" if z_score > 3 else "medium",
                    )
                )
    return AnomalyReport(
        analyzed_readings=len(readings),
        sufficient_data=True,
        anomalies=anomalies[:MAX_ANOMALIES],
        statistics=stats,
    )
