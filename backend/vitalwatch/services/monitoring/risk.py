"""Heuristic risk scoring over a window of recent readings.

The score is a weighted sum of independent conditions clamped to [0, 100]:

- mean heart rate of the latest 10 readings above 100 (+20) or below 60 (+15)
- heart rate trending up more than 10% against the previous 10 readings (+10)
- mean temperature above 37.5 (+25) or above 37.2 (+10)
- mean SpO2 below 92 (+30) or below 95 (+15)
- mean systolic above 140 or diastolic above 90 (+20)
- more than 30% of the latest readings flagged warning or critical (+15)
- a busy recent alert history (+10)

With fewer than 10 readings the trend term is skipped and confidence drops
from 0.85 to 0.5.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Optional, Protocol

MODEL_VERSION = "v1.0"
FEATURES = ["heartRate", "temperature", "spo2", "bloodPressure", "alertPatterns"]
RECENT_WINDOW = 10
MIN_READINGS = 10


class RiskLevel(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


RECOMMENDATIONS = {
    RiskLevel.critical: (
        "URGENT: Immediate medical attention required. Contact emergency "
        "services or healthcare provider immediately."
    ),
    RiskLevel.high: "High priority: Schedule immediate consultation with healthcare provider.",
    RiskLevel.medium: "Schedule follow-up appointment within 24-48 hours for evaluation.",
    RiskLevel.low: (
        "Continue regular monitoring. Maintain healthy lifestyle and "
        "medications as prescribed."
    ),
}


class ScorableReading(Protocol):
    heart_rate: Optional[float]
    temperature: Optional[float]
    spo2: Optional[float]
    systolic: Optional[float]
    diastolic: Optional[float]
    status: str


@dataclass
class RiskFactor:
    factor: str
    severity: str
    value: Any = None


@dataclass
class RiskPrediction:
    patient_id: str
    risk_score: int
    risk_level: str
    factors: list[RiskFactor]
    recommendation: str
    confidence: float
    timestamp: datetime
    readings_analyzed: int
    prediction_id: str = ""
    model_version: str = MODEL_VERSION
    features: list[str] = field(default_factory=lambda: list(FEATURES))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def risk_level_for(score: int) -> RiskLevel:
    if score >= 70:
        return RiskLevel.critical
    if score >= 50:
        return RiskLevel.high
    if score >= 30:
        return RiskLevel.medium
    return RiskLevel.low


def _mean(readings: Sequence[ScorableReading], attr: str) -> Optional[float]:
    values = [getattr(r, attr) for r in readings if getattr(r, attr) is not None]
    if not values:
        return None
    return sum(values) / len(values)


def _display(value: float) -> float:
    return round(value, 1)


def score(
    recent_readings: Sequence[ScorableReading],
    prior_alert_count: int = 0,
    *,
    patient_id: str = "",
    alert_history_threshold: int = 5,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> RiskPrediction:
    """Score ``recent_readings`` (newest first) for one patient."""
    recent = list(recent_readings[:RECENT_WINDOW])
    older = list(recent_readings[RECENT_WINDOW : RECENT_WINDOW * 2])
    enough_data = len(recent_readings) >= MIN_READINGS
    factors: list[RiskFactor] = []
    total = 0

    avg_hr = _mean(recent, "heart_rate")
    if avg_hr is not None:
        if avg_hr > 100:
            total += 20
            factors.append(RiskFactor("Elevated Heart Rate", "medium", _display(avg_hr)))
        elif avg_hr < 60:
            total += 15
            factors.append(RiskFactor("Low Heart Rate", "medium", _display(avg_hr)))

        older_hr = _mean(older, "heart_rate") if enough_data else None
        if older_hr is not None and avg_hr > older_hr * 1.1:
            total += 10
            factors.append(RiskFactor("Heart Rate Increasing", "low", "up"))

    avg_temp = _mean(recent, "temperature")
    if avg_temp is not None:
        if avg_temp > 37.5:
            total += 25
            factors.append(RiskFactor("Fever Detected", "high", _display(avg_temp)))
        elif avg_temp > 37.2:
            total += 10
            factors.append(RiskFactor("Elevated Temperature", "low", _display(avg_temp)))

    avg_spo2 = _mean(recent, "spo2")
    if avg_spo2 is not None:
        if avg_spo2 < 92:
            total += 30
            factors.append(RiskFactor("Low Blood Oxygen", "critical", _display(avg_spo2)))
        elif avg_spo2 < 95:
            total += 15
            factors.append(
                RiskFactor("Reduced Oxygen Saturation", "medium", _display(avg_spo2))
            )

    avg_sys = _mean(recent, "systolic")
    avg_dia = _mean(recent, "diastolic")
    if (avg_sys is not None and avg_sys > 140) or (avg_dia is not None and avg_dia > 90):
        total += 20
        shown = "/".join(
            "-" if value is None else f"{round(value)}" for value in (avg_sys, avg_dia)
        )
        factors.append(RiskFactor("High Blood Pressure", "medium", shown))

    if recent:
        flagged = sum(1 for r in recent if r.status in ("warning", "critical"))
        if flagged / len(recent) > 0.3:
            total += 15
            factors.append(RiskFactor("Frequent Alerts", "medium", f"{flagged} alerts"))

    if prior_alert_count >= alert_history_threshold:
        total += 10
        factors.append(
            RiskFactor("Recent Alert History", "medium", f"{prior_alert_count} alerts")
        )

    if not enough_data:
        factors.append(RiskFactor("Insufficient Data", "info", "Using baseline assessment"))

    risk_score = max(0, min(100, total))
    level = risk_level_for(risk_score)
    now = clock()
    return RiskPrediction(
        prediction_id=f"PRED-{patient_id}-{int(now.timestamp() * 1000)}",
        patient_id=patient_id,
        risk_score=risk_score,
        risk_level=level,
        factors=factors,
        recommendation=RECOMMENDATIONS[level],
        confidence=0.85 if enough_data else 0.5,
        timestamp=now,
        readings_analyzed=len(recent_readings),
    )
