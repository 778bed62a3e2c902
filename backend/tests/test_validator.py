from datetime import UTC, datetime

import pytest

from vitalwatch.errors import InvalidValueError, MissingFieldError, OutOfRangeError
from vitalwatch.services.monitoring.validator import validate

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _payload(**overrides):
    payload = {"patientId": "P1", "deviceId": "D1"}
    payload.update(overrides)
    return payload


def test_bare_numbers_get_default_units():
    reading = validate(
        _payload(heartRate=72, temperature=36.8, spo2=98), clock=lambda: FIXED_NOW
    )

    assert reading.patient_id == "P1"
    assert reading.device_id == "D1"
    assert reading.recorded_at == FIXED_NOW
    assert reading.heart_rate.value == 72.0
    assert reading.heart_rate.unit == "bpm"
    assert reading.temperature.unit == "°C"
    assert reading.spo2.unit == "%"
    assert reading.heart_rate.quality == "good"
    assert reading.range_issues == []


def test_measurement_objects_keep_unit_and_quality():
    reading = validate(
        _payload(
            heartRate={"value": 80, "unit": "bpm", "quality": "fair"},
            bloodPressure={"systolic": 120, "diastolic": 80},
        )
    )

    assert reading.heart_rate.quality == "fair"
    assert reading.blood_pressure.systolic == 120.0
    assert reading.blood_pressure.diastolic == 80.0
    assert reading.blood_pressure.unit == "mmHg"
    assert reading.temperature is None


def test_snake_case_keys_are_accepted():
    reading = validate(
        {
            "patient_id": "P2",
            "device_id": "D2",
            "heart_rate": 65,
            "blood_pressure": {"systolic": 110, "diastolic": 70},
        }
    )

    assert reading.patient_id == "P2"
    assert reading.heart_rate.value == 65.0
    assert reading.blood_pressure is not None


@pytest.mark.parametrize("missing", ["patientId", "deviceId"])
def test_missing_identifiers_are_rejected(missing):
    payload = _payload(heartRate=70)
    payload.pop(missing)

    with pytest.raises(MissingFieldError) as excinfo:
        validate(payload)

    assert excinfo.value.status_code == 400
    assert missing in excinfo.value.message


def test_blank_patient_id_is_missing():
    with pytest.raises(MissingFieldError):
        validate(_payload(patientId="  ", heartRate=70))


@pytest.mark.parametrize("raw", ["abc", True, [72], {"value": "fast"}])
def test_non_numeric_vitals_are_invalid(raw):
    with pytest.raises(InvalidValueError):
        validate(_payload(heartRate=raw))


def test_numeric_strings_are_coerced():
    reading = validate(_payload(heartRate="72", temperature=" 36.6 "))

    assert reading.heart_rate.value == 72.0
    assert reading.temperature.value == 36.6


def test_out_of_range_value_is_flagged_not_rejected():
    reading = validate(_payload(heartRate=300, spo2=97))

    assert reading.heart_rate.value == 300.0
    assert reading.heart_rate.quality == "poor"
    assert reading.spo2.quality == "good"
    assert len(reading.range_issues) == 1
    issue = reading.range_issues[0]
    assert isinstance(issue, OutOfRangeError)
    assert issue.field_name == "heart_rate"
    assert (issue.low, issue.high) == (0, 250)
    assert reading.poor_quality_vitals == ["heart_rate"]


def test_strict_mode_raises_out_of_range():
    with pytest.raises(OutOfRangeError):
        validate(_payload(temperature=50), strict=True)


def test_blood_pressure_out_of_range_marks_whole_measurement_poor():
    reading = validate(_payload(bloodPressure={"systolic": 300, "diastolic": 80}))

    assert reading.blood_pressure.quality == "poor"
    assert [issue.field_name for issue in reading.range_issues] == ["systolic"]


def test_blood_pressure_must_be_an_object():
    with pytest.raises(InvalidValueError):
        validate(_payload(bloodPressure="120/80"))


def test_timestamp_parsing():
    zulu = validate(_payload(heartRate=70, timestamp="2026-01-02T03:04:05Z"))
    naive = validate(_payload(heartRate=70, timestamp="2026-01-02T03:04:05"))

    assert zulu.recorded_at == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
    assert naive.recorded_at.tzinfo is not None
    assert naive.recorded_at == zulu.recorded_at


def test_bad_timestamp_is_invalid():
    with pytest.raises(InvalidValueError):
        validate(_payload(heartRate=70, timestamp="yesterday"))


def test_device_metadata_is_parsed():
    reading = validate(
        _payload(
            heartRate=70,
            metadata={"batteryLevel": 15, "signalStrength": -70, "firmwareVersion": "1.2.0"},
        )
    )

    assert reading.device.battery_level == 15.0
    assert reading.device.signal_strength == -70.0
    assert reading.device.firmware_version == "1.2.0"


def test_reading_without_vitals_is_accepted():
    reading = validate(_payload())

    assert reading.has_vitals is False


def test_record_fields_flatten_the_reading():
    reading = validate(
        _payload(
            heartRate=72,
            bloodPressure={"systolic": 118, "diastolic": 76},
            metadata={"batteryLevel": 80},
        ),
        clock=lambda: FIXED_NOW,
    )
    fields = reading.to_record_fields()

    assert fields["heart_rate"] == 72.0
    assert fields["heart_rate_unit"] == "bpm"
    assert fields["temperature"] is None
    assert fields["systolic"] == 118.0
    assert fields["blood_pressure_unit"] == "mmHg"
    assert fields["battery_level"] == 80.0
    assert fields["recorded_at"] == FIXED_NOW
