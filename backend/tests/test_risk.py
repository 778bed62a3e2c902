from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

from vitalwatch.services.monitoring.risk import (
    RECOMMENDATIONS,
    RiskLevel,
    risk_level_for,
    score,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _reading(**values):
    base = {
        "heart_rate": None,
        "temperature": None,
        "spo2": None,
        "systolic": None,
        "diastolic": None,
        "status": "normal",
    }
    base.update(values)
    return SimpleNamespace(**base)


@pytest.mark.parametrize(
    "value,level",
    [(0, "low"), (29, "low"), (30, "medium"), (49, "medium"), (50, "high"), (69, "high"), (70, "critical"), (100, "critical")],
)
def test_risk_level_boundaries(value, level):
    assert risk_level_for(value) == level


def test_elevated_heart_rate_alone_is_low_risk():
    readings = [_reading(heart_rate=105) for _ in range(10)]

    prediction = score(readings, patient_id="P1", clock=lambda: FIXED_NOW)

    assert prediction.risk_score == 20
    assert prediction.risk_level == RiskLevel.low
    assert [f.factor for f in prediction.factors] == ["Elevated Heart Rate"]
    assert prediction.confidence == 0.85
    assert prediction.recommendation == RECOMMENDATIONS[RiskLevel.low]
    assert prediction.readings_analyzed == 10


def test_low_heart_rate_scores_lower_than_high():
    readings = [_reading(heart_rate=50) for _ in range(10)]

    prediction = score(readings)

    assert prediction.risk_score == 15
    assert prediction.factors[0].factor == "Low Heart Rate"


def test_rising_heart_rate_adds_trend_factor():
    readings = [_reading(heart_rate=90) for _ in range(10)] + [
        _reading(heart_rate=80) for _ in range(10)
    ]

    prediction = score(readings)

    assert prediction.risk_score == 10
    assert prediction.factors[0].factor == "Heart Rate Increasing"


def test_trend_needs_an_older_window():
    readings = [_reading(heart_rate=90) for _ in range(10)]

    assert score(readings).risk_score == 0


def test_everything_abnormal_clamps_to_100():
    readings = [
        _reading(
            heart_rate=130,
            temperature=38.5,
            spo2=88,
            systolic=160,
            diastolic=100,
            status="critical",
        )
        for _ in range(10)
    ]

    prediction = score(readings, prior_alert_count=6, patient_id="P1")

    assert prediction.risk_score == 100
    assert prediction.risk_level == RiskLevel.critical
    factor_names = {f.factor for f in prediction.factors}
    assert {
        "Elevated Heart Rate",
        "Fever Detected",
        "Low Blood Oxygen",
        "High Blood Pressure",
        "Frequent Alerts",
        "Recent Alert History",
    } <= factor_names
    assert prediction.recommendation.startswith("URGENT")


def test_moderate_vitals_score_partial_weights():
    readings = [_reading(temperature=37.3, spo2=94) for _ in range(10)]

    prediction = score(readings)

    assert prediction.risk_score == 25
    assert {f.factor for f in prediction.factors} == {
        "Elevated Temperature",
        "Reduced Oxygen Saturation",
    }


def test_alert_history_threshold_is_configurable():
    readings = [_reading(heart_rate=75) for _ in range(10)]

    assert score(readings, prior_alert_count=3).risk_score == 0
    assert score(readings, prior_alert_count=3, alert_history_threshold=3).risk_score == 10


def test_insufficient_data_lowers_confidence():
    prediction = score([_reading(heart_rate=75) for _ in range(4)])

    assert prediction.confidence == 0.5
    assert prediction.factors[-1].factor == "Insufficient Data"
    assert prediction.factors[-1].severity == "info"


def test_empty_history_is_baseline_low():
    prediction = score([], patient_id="P9")

    assert prediction.risk_score == 0
    assert prediction.risk_level == RiskLevel.low
    assert prediction.readings_analyzed == 0


def test_prediction_id_is_derived_from_clock():
    first = score([], patient_id="P1", clock=lambda: FIXED_NOW)
    second = score([], patient_id="P1", clock=lambda: FIXED_NOW)

    assert first.prediction_id == second.prediction_id
    assert first.prediction_id == f"PRED-P1-{int(FIXED_NOW.timestamp() * 1000)}"
    assert first.to_dict()["model_version"] == "v1.0"
