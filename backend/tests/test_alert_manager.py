import pytest

from vitalwatch.errors import InvalidStateError, NotFoundError
from vitalwatch.services.monitoring.alerts import AlertManager
from vitalwatch.services.monitoring.broadcaster import ALERTS_TOPIC, patient_topic
from vitalwatch.services.monitoring.evaluator import AlertCandidate
from vitalwatch.services.monitoring.notifications import NotificationResult
from vitalwatch.services.monitoring.risk import score
from vitalwatch.services.stores import PatientContact


class RecordingDispatcher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def dispatch(self, contact, alert):
        self.calls.append((contact, alert))
        if self.fail:
            raise RuntimeError("gateway down")
        return [NotificationResult(channel="email", status="sent", message_id="EMAIL-1")]


class FailingBroadcaster:
    async def publish(self, topic, payload):
        raise ConnectionError("socket gone")


def _candidate(severity="warning", alert_type="heartRate", value=105):
    return AlertCandidate(
        alert_type=alert_type,
        severity=severity,
        title="High Heart Rate Detected",
        message=f"Abnormal heart rate: {value} bpm (normal: 60-100)",
        value=value,
        threshold=100,
        unit="bpm",
    )


@pytest.fixture()
def recording_dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def manager(alert_store, threshold_store, broadcaster, recording_dispatcher, clock):
    return AlertManager(
        alert_store,
        broadcaster=broadcaster,
        dispatcher=recording_dispatcher,
        contacts=threshold_store,
        suppression_window_seconds=300,
        background=False,
        clock=clock,
    )


@pytest.mark.anyio
async def test_first_candidate_creates_active_alert(manager, broadcaster, recording_dispatcher):
    result = await manager.raise_alert(_candidate(), "P1", "D1")

    assert result.created is True
    assert result.notified is True
    alert = result.alert
    assert alert.alert_id.startswith("ALT-")
    assert alert.status == "active"
    assert alert.severity == "warning"
    assert alert.occurrence_count == 1
    assert alert.data["value"] == 105
    assert len(recording_dispatcher.calls) == 1
    assert recording_dispatcher.calls[0][1]["event"] == "alert.created"
    assert alert.notifications[0]["message_id"] == "EMAIL-1"

    patient_events = broadcaster.events_for(patient_topic("P1"))
    assert patient_events[0]["event"] == "alert.created"
    assert patient_events[0]["alert"]["alert_id"] == alert.alert_id
    assert broadcaster.events_for(ALERTS_TOPIC)


@pytest.mark.anyio
async def test_repeat_within_window_is_suppressed(manager, alert_store, recording_dispatcher, clock):
    first = await manager.raise_alert(_candidate(), "P1", "D1")
    clock.advance(seconds=60)
    second = await manager.raise_alert(_candidate(value=108), "P1", "D1")

    assert second.created is False
    assert second.notified is False
    assert second.alert.alert_id == first.alert.alert_id
    assert second.alert.occurrence_count == 2
    assert second.alert.data["value"] == 108
    assert await alert_store.count_alerts(patient_id="P1") == 1
    assert len(recording_dispatcher.calls) == 1


@pytest.mark.anyio
async def test_repeat_after_window_renotifies_same_alert(manager, recording_dispatcher, clock):
    first = await manager.raise_alert(_candidate(), "P1")
    clock.advance(seconds=301)
    again = await manager.raise_alert(_candidate(), "P1")

    assert again.alert.alert_id == first.alert.alert_id
    assert again.notified is True
    assert again.alert.occurrence_count == 2
    assert len(recording_dispatcher.calls) == 2
    assert recording_dispatcher.calls[1][1]["event"] == "alert.updated"


@pytest.mark.anyio
async def test_window_is_measured_from_last_trigger(manager, recording_dispatcher, clock):
    await manager.raise_alert(_candidate(), "P1")
    for _ in range(3):
        clock.advance(seconds=200)
        await manager.raise_alert(_candidate(), "P1")

    assert len(recording_dispatcher.calls) == 1


@pytest.mark.anyio
async def test_severity_only_rises_while_active(manager, recording_dispatcher, clock):
    await manager.raise_alert(_candidate("warning"), "P1")
    clock.advance(seconds=10)
    upgraded = await manager.raise_alert(_candidate("critical", value=130), "P1")
    clock.advance(seconds=10)
    calmer = await manager.raise_alert(_candidate("warning"), "P1")

    assert upgraded.notified is True
    assert upgraded.alert.severity == "critical"
    assert calmer.notified is False
    assert calmer.alert.severity == "critical"
    assert len(recording_dispatcher.calls) == 2


@pytest.mark.anyio
async def test_different_types_and_patients_are_independent(manager, alert_store):
    await manager.raise_alert(_candidate(), "P1")
    await manager.raise_alert(_candidate(alert_type="spo2"), "P1")
    await manager.raise_alert(_candidate(), "P2")

    assert await alert_store.count_alerts() == 3


@pytest.mark.anyio
async def test_contact_is_passed_to_dispatcher(manager, threshold_store, recording_dispatcher):
    contact = PatientContact(patient_id="P1", email="care@example.com", alert_methods=["email"])
    await threshold_store.set_contact(contact)

    await manager.raise_alert(_candidate(), "P1")

    assert recording_dispatcher.calls[0][0] == contact


@pytest.mark.anyio
async def test_notification_failure_does_not_fail_alert(alert_store, broadcaster, clock):
    manager = AlertManager(
        alert_store,
        broadcaster=broadcaster,
        dispatcher=RecordingDispatcher(fail=True),
        background=False,
        clock=clock,
    )

    result = await manager.raise_alert(_candidate(), "P1")

    assert result.created is True
    assert (await alert_store.get_alert(result.alert.alert_id)).notifications == []


@pytest.mark.anyio
async def test_broadcast_failure_does_not_fail_alert(alert_store, clock):
    manager = AlertManager(
        alert_store, broadcaster=FailingBroadcaster(), background=False, clock=clock
    )

    result = await manager.raise_alert(_candidate(), "P1")

    assert result.created is True


@pytest.mark.anyio
async def test_background_delivery_is_drained(alert_store, broadcaster, clock):
    from vitalwatch.services.monitoring.alerts import drain_notifications

    dispatcher = RecordingDispatcher()
    manager = AlertManager(
        alert_store, broadcaster=broadcaster, dispatcher=dispatcher, background=True, clock=clock
    )

    result = await manager.raise_alert(_candidate(), "P1")
    await drain_notifications()

    assert len(dispatcher.calls) == 1
    assert len(result.alert.notifications) == 1


@pytest.mark.anyio
async def test_acknowledge_then_resolve(manager, clock):
    alert = (await manager.raise_alert(_candidate(), "P1")).alert

    acknowledged = await manager.acknowledge(alert.alert_id, "nurse-1")
    assert acknowledged.status == "acknowledged"
    assert acknowledged.acknowledged_by == "nurse-1"
    assert acknowledged.acknowledged_at == clock.now

    resolved = await manager.resolve(alert.alert_id, "dr-2", notes="Patient rested")
    assert resolved.status == "resolved"
    assert resolved.resolved_by == "dr-2"
    assert resolved.resolution_method == "manual"
    assert resolved.resolution_notes == "Patient rested"


@pytest.mark.anyio
async def test_resolved_is_terminal(manager):
    alert = (await manager.raise_alert(_candidate(), "P1")).alert
    await manager.resolve(alert.alert_id, "dr-2")

    with pytest.raises(InvalidStateError):
        await manager.resolve(alert.alert_id, "dr-2")
    with pytest.raises(InvalidStateError):
        await manager.acknowledge(alert.alert_id, "nurse-1")
    with pytest.raises(InvalidStateError):
        await manager.escalate(alert.alert_id)


@pytest.mark.anyio
async def test_acknowledge_only_from_active(manager):
    alert = (await manager.raise_alert(_candidate(), "P1")).alert
    await manager.acknowledge(alert.alert_id, "nurse-1")

    with pytest.raises(InvalidStateError):
        await manager.acknowledge(alert.alert_id, "nurse-1")


@pytest.mark.anyio
async def test_escalate_raises_severity(manager, broadcaster):
    alert = (await manager.raise_alert(_candidate(), "P1")).alert
    await manager.acknowledge(alert.alert_id, "nurse-1")

    escalated = await manager.escalate(
        alert.alert_id, level=2, escalated_to="on-call", reason="No response"
    )

    assert escalated.status == "escalated"
    assert escalated.severity == "emergency"
    assert escalated.escalation_level == 2
    assert escalated.escalated_to == "on-call"
    assert broadcaster.events_for(ALERTS_TOPIC)[-1]["event"] == "alert.escalated"

    resolved = await manager.resolve(alert.alert_id, "dr-2")
    assert resolved.status == "resolved"


@pytest.mark.anyio
async def test_new_active_alert_after_acknowledgement(manager, alert_store):
    first = (await manager.raise_alert(_candidate(), "P1")).alert
    await manager.acknowledge(first.alert_id, "nurse-1")

    second = await manager.raise_alert(_candidate(), "P1")

    assert second.created is True
    assert second.alert.alert_id != first.alert_id
    assert await alert_store.count_alerts(patient_id="P1") == 2


@pytest.mark.anyio
async def test_unknown_alert_is_not_found(manager):
    with pytest.raises(NotFoundError):
        await manager.acknowledge("ALT-missing", "nurse-1")


@pytest.mark.anyio
async def test_emergency_always_notifies(manager, recording_dispatcher, alert_store, clock):
    first = await manager.raise_emergency(
        "P1", "D1", message="fall detected", location={"lat": 1.0, "lng": 2.0}
    )
    clock.advance(seconds=30)
    second = await manager.raise_emergency(
        "P1", "D1", message="chest pain", location={"lat": 3.0, "lng": 4.0}
    )

    assert first.alert.alert_type == "emergency"
    assert first.alert.severity == "emergency"
    assert second.created is True
    assert second.notified is True
    assert second.alert.alert_id != first.alert.alert_id
    assert len(recording_dispatcher.calls) == 2

    stored = await alert_store.list_alerts(patient_id="P1", alert_type="emergency")
    by_message = {alert.message: alert for alert in stored}
    assert set(by_message) == {"fall detected", "chest pain"}
    assert by_message["fall detected"].data["location"] == {"lat": 1.0, "lng": 2.0}
    assert by_message["chest pain"].data["location"] == {"lat": 3.0, "lng": 4.0}
    assert all(alert.occurrence_count == 1 for alert in stored)


@pytest.mark.anyio
async def test_prediction_alert_only_for_high_risk(manager, clock):
    from types import SimpleNamespace

    calm = score([], patient_id="P1", clock=clock)
    sick = score(
        [
            SimpleNamespace(
                heart_rate=130, temperature=38.6, spo2=89, systolic=None, diastolic=None, status="critical"
            )
            for _ in range(10)
        ],
        patient_id="P1",
        clock=clock,
    )

    assert await manager.raise_prediction(calm) is None
    result = await manager.raise_prediction(sick, "D1")

    assert result.alert.alert_type == "prediction"
    assert result.alert.severity == "critical"
    assert result.alert.title == "Health Risk Prediction: CRITICAL"
    assert result.alert.data["prediction_id"] == sick.prediction_id
    assert result.alert.data["threshold"] == 70


@pytest.mark.anyio
async def test_event_counters(manager, clock):
    before = AlertManager.get_global_event_counters()

    await manager.raise_alert(_candidate(), "P1")
    clock.advance(seconds=1)
    await manager.raise_alert(_candidate(), "P1")

    after = AlertManager.get_global_event_counters()
    assert after["created"] == before.get("created", 0) + 1
    assert after["suppressed"] == before.get("suppressed", 0) + 1
    assert after["notification_sent"] == before.get("notification_sent", 0) + 1
