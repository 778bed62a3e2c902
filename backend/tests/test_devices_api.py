from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

from vitalwatch.services.monitoring.devices import is_online


def _register(client, **fields):
    payload = {"name": "Ward 3 wristband", **fields}
    response = client.post("/api/v1/devices", json=payload)
    assert response.status_code == 201
    return response.json()


def test_list_devices_empty(client):
    response = client.get("/api/v1/devices")

    assert response.status_code == 200
    assert response.json() == {
        "devices": [],
        "pagination": {"total": 0, "limit": 100, "skip": 0},
    }


def test_register_device_with_explicit_id(client):
    device = _register(client, device_id="ESP-001", patient_id="P1", firmware_version="1.2.0")

    assert device["device_id"] == "ESP-001"
    assert device["device_type"] == "ESP32"
    assert device["status"] == "offline"
    assert device["online"] is False
    assert device["patient_id"] == "P1"
    assert device["last_seen_at"] is None


def test_register_device_generates_id(client):
    device = _register(client, device_type="Arduino")

    assert device["device_id"].startswith("DEV-")
    assert device["device_type"] == "Arduino"


def test_register_duplicate_device_conflicts(client):
    _register(client, device_id="ESP-001")

    response = client.post("/api/v1/devices", json={"name": "Other", "device_id": "ESP-001"})

    assert response.status_code == 409


def test_register_rejects_unknown_device_type(client):
    response = client.post("/api/v1/devices", json={"name": "x", "device_type": "toaster"})

    assert response.status_code == 422


def test_reading_marks_device_online(client):
    response = client.post(
        "/api/v1/readings",
        json={
            "patientId": "P1",
            "deviceId": "ESP-007",
            "heartRate": 72,
            "metadata": {"batteryLevel": 64, "signalStrength": -60},
        },
    )
    assert response.status_code == 201

    device = client.get("/api/v1/devices/ESP-007").json()

    assert device["status"] == "online"
    assert device["online"] is True
    assert device["patient_id"] == "P1"
    assert device["battery_level"] == 64
    assert device["signal_strength"] == -60
    assert device["last_data"]["heart_rate"] == 72
    assert device["name"] == "ESP-007"


def test_list_devices_filters(client):
    _register(client, device_id="A", patient_id="P1")
    _register(client, device_id="B", patient_id="P2")
    client.post("/api/v1/readings", json={"patientId": "P1", "deviceId": "A", "heartRate": 70})

    online = client.get("/api/v1/devices", params={"status": "online"}).json()
    by_patient = client.get("/api/v1/devices", params={"patient_id": "P2"}).json()

    assert [d["device_id"] for d in online["devices"]] == ["A"]
    assert online["pagination"]["total"] == 1
    assert [d["device_id"] for d in by_patient["devices"]] == ["B"]


def test_list_devices_invalid_status(client):
    response = client.get("/api/v1/devices", params={"status": "asleep"})

    assert response.status_code == 422


def test_device_stats(client):
    _register(client, device_id="A")
    _register(client, device_id="B")
    _register(client, device_id="C")
    client.post("/api/v1/readings", json={"patientId": "P1", "deviceId": "A", "heartRate": 70})
    client.put("/api/v1/devices/C/status", json={"status": "maintenance"})

    stats = client.get("/api/v1/devices/stats").json()

    assert stats == {
        "status_counts": {"online": 1, "offline": 1, "maintenance": 1},
        "total": 3,
        "online": 1,
    }


def test_set_device_status(client):
    _register(client, device_id="A")

    response = client.put("/api/v1/devices/A/status", json={"status": "maintenance"})

    assert response.status_code == 200
    assert response.json()["status"] == "maintenance"


def test_set_device_status_rejects_unknown_value(client):
    _register(client, device_id="A")

    response = client.put("/api/v1/devices/A/status", json={"status": "broken"})

    assert response.status_code == 422


def test_maintenance_device_stays_in_maintenance_after_reading(client):
    _register(client, device_id="A")
    client.put("/api/v1/devices/A/status", json={"status": "maintenance"})

    client.post("/api/v1/readings", json={"patientId": "P1", "deviceId": "A", "heartRate": 70})
    device = client.get("/api/v1/devices/A").json()

    assert device["status"] == "maintenance"
    assert device["last_seen_at"] is not None
    assert device["online"] is False


def test_update_device(client):
    _register(client, device_id="A")

    response = client.put("/api/v1/devices/A", json={"name": "Bed 4", "patient_id": "P9"})

    assert response.status_code == 200
    assert response.json()["name"] == "Bed 4"
    assert response.json()["patient_id"] == "P9"


def test_unknown_device_is_404(client):
    assert client.get("/api/v1/devices/nope").status_code == 404
    assert client.put("/api/v1/devices/nope", json={"name": "x"}).status_code == 404
    assert (
        client.put("/api/v1/devices/nope/status", json={"status": "online"}).status_code
        == 404
    )
    assert client.delete("/api/v1/devices/nope").status_code == 404


def test_delete_device(client):
    _register(client, device_id="A")

    response = client.delete("/api/v1/devices/A")

    assert response.status_code == 204
    assert client.get("/api/v1/devices/A").status_code == 404


def test_is_online_needs_recent_heartbeat():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    window = timedelta(minutes=5)

    def device(status, seen):
        return SimpleNamespace(status=status, last_seen_at=seen)

    assert is_online(device("online", now - timedelta(minutes=1)), now, window)
    assert not is_online(device("online", now - timedelta(minutes=6)), now, window)
    assert not is_online(device("online", None), now, window)
    assert not is_online(device("maintenance", now), now, window)
    # Naive timestamps from SQLite are treated as UTC.
    assert is_online(device("online", datetime(2026, 3, 1, 11, 58)), now, window)
