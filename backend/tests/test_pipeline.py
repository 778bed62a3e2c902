from contextlib import asynccontextmanager

import pytest

from vitalwatch.config import settings
from vitalwatch.errors import MissingFieldError
from vitalwatch.services.monitoring.alerts import AlertManager
from vitalwatch.services.monitoring.broadcaster import patient_topic
from vitalwatch.services.monitoring.pipeline import MonitoringService
from vitalwatch.services.stores import InMemoryReadingStore


@pytest.fixture()
def service(
    reading_store, alert_store, threshold_store, device_store, broadcaster, dispatcher, clock
):
    manager = AlertManager(
        alert_store,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        contacts=threshold_store,
        background=False,
        clock=clock,
    )
    return MonitoringService(
        reading_store,
        threshold_store,
        manager,
        broadcaster,
        devices=device_store,
        config=settings.model_copy(update={"risk_auto_predict_on_ingest": False}),
        clock=clock,
    )


def _payload(**vitals):
    return {"patientId": "P1", "deviceId": "D1", **vitals}


@pytest.mark.anyio
async def test_ingest_stores_reading_and_raises_alerts(service, reading_store, broadcaster):
    outcome = await service.ingest(_payload(heartRate=105, temperature=38.2, spo2=94))

    assert outcome.evaluation.status == "warning"
    assert outcome.reading.status == "warning"
    assert outcome.reading.heart_rate == 105.0
    assert {a.alert_type for a in outcome.alerts} == {"heartRate", "temperature", "spo2"}
    assert await reading_store.count_readings("P1") == 1

    events = [e["event"] for e in broadcaster.events_for(patient_topic("P1"))]
    assert events[0] == "reading.created"
    assert events.count("alert.created") == 3


@pytest.mark.anyio
async def test_normal_reading_raises_nothing(service, alert_store):
    outcome = await service.ingest(_payload(heartRate=72, temperature=36.8, spo2=98))

    assert outcome.evaluation.status == "normal"
    assert outcome.alerts == []
    assert await alert_store.count_alerts() == 0


@pytest.mark.anyio
async def test_patient_overrides_are_applied(service, threshold_store):
    await threshold_store.set_thresholds("P1", {"heart_rate": {"max": 110}})

    outcome = await service.ingest(_payload(heartRate=105))

    assert outcome.evaluation.status == "normal"


@pytest.mark.anyio
async def test_invalid_payload_stores_nothing(service, reading_store):
    with pytest.raises(MissingFieldError):
        await service.ingest({"deviceId": "D1", "heartRate": 70})

    assert await reading_store.count_readings("P1") == 0


@pytest.mark.anyio
async def test_repeated_abnormal_readings_share_one_alert(service, alert_store, clock):
    first = await service.ingest(_payload(heartRate=105))
    clock.advance(seconds=30)
    second = await service.ingest(_payload(heartRate=110))

    assert second.alerts[0].alert_id == first.alerts[0].alert_id
    assert second.alerts[0].occurrence_count == 2
    assert await alert_store.count_alerts() == 1


@pytest.mark.anyio
async def test_batch_reports_bad_items(service):
    batch = await service.ingest_batch(
        [
            _payload(heartRate=72),
            {"patientId": "P1", "heartRate": 72},
            _payload(heartRate="fast"),
            _payload(spo2=88),
        ]
    )

    assert batch.processed == 2
    assert batch.failed == 2
    assert batch.alerts_raised == 1
    assert [e["index"] for e in batch.errors] == [1, 2]
    assert [e["type"] for e in batch.errors] == ["missing_field", "invalid_value"]


@pytest.mark.anyio
async def test_predict_risk_raises_prediction_alert(service, broadcaster, clock):
    for _ in range(10):
        clock.advance(seconds=1)
        await service.ingest(_payload(heartRate=130, temperature=38.6, spo2=89))

    prediction, alert = await service.predict_risk("P1", device_id="D1")

    assert prediction.risk_level == "critical"
    assert prediction.readings_analyzed == 10
    assert alert is not None
    assert alert.alert_type == "prediction"
    events = broadcaster.events_for(patient_topic("P1"))
    assert events[-1]["event"] == "prediction.created"
    assert events[-1]["prediction"]["alert_id"] == alert.alert_id


@pytest.mark.anyio
async def test_predict_risk_without_alert(service):
    await service.ingest(_payload(heartRate=72))

    prediction, alert = await service.predict_risk("P1", raise_alert=False)

    assert prediction.risk_level == "low"
    assert alert is None


@pytest.mark.anyio
async def test_auto_prediction_on_abnormal_ingest(
    reading_store, alert_store, threshold_store, broadcaster, clock
):
    manager = AlertManager(alert_store, broadcaster=broadcaster, background=False, clock=clock)
    service = MonitoringService(
        reading_store,
        threshold_store,
        manager,
        broadcaster,
        config=settings.model_copy(update={"risk_auto_predict_on_ingest": True}),
        clock=clock,
    )

    outcome = await service.ingest(_payload(heartRate=72))
    assert outcome.prediction is None

    outcome = await service.ingest(_payload(heartRate=130, temperature=38.6, spo2=89))
    assert outcome.prediction is not None
    assert outcome.prediction.readings_analyzed == 2


@pytest.mark.anyio
async def test_ingest_records_device_heartbeat(service, device_store, clock):
    await service.ingest(
        _payload(heartRate=72, spo2=97, metadata={"batteryLevel": 42, "firmwareVersion": "1.4"})
    )

    device = await device_store.get_device("D1")
    assert device.status == "online"
    assert device.patient_id == "P1"
    assert device.last_seen_at == clock.now
    assert device.battery_level == 42.0
    assert device.firmware_version == "1.4"
    assert device.last_data["heart_rate"] == 72.0
    assert device.last_data["spo2"] == 97.0
    assert device.last_data["temperature"] is None


@pytest.mark.anyio
async def test_invalid_payload_leaves_device_registry_alone(service, device_store):
    with pytest.raises(MissingFieldError):
        await service.ingest({"deviceId": "D1", "heartRate": 70})

    assert await device_store.get_device("D1") is None


class _TrackingReadingStore(InMemoryReadingStore):
    def __init__(self):
        super().__init__()
        self.savepoints = []

    @asynccontextmanager
    async def savepoint(self):
        try:
            yield
        except Exception as exc:
            self.savepoints.append(type(exc).__name__)
            raise
        else:
            self.savepoints.append("released")


@pytest.mark.anyio
async def test_batch_runs_each_item_in_its_own_savepoint(
    alert_store, threshold_store, broadcaster, clock
):
    readings = _TrackingReadingStore()
    manager = AlertManager(alert_store, broadcaster=broadcaster, background=False, clock=clock)
    service = MonitoringService(
        readings,
        threshold_store,
        manager,
        broadcaster,
        config=settings.model_copy(update={"risk_auto_predict_on_ingest": False}),
        clock=clock,
    )

    batch = await service.ingest_batch(
        [_payload(heartRate=72), {"patientId": "P1", "heartRate": 72}, _payload(heartRate=75)]
    )

    assert batch.processed == 2
    assert readings.savepoints == ["released", "MissingFieldError", "released"]
