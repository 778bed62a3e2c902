import pytest
from pydantic import ValidationError

from vitalwatch import config


def test_settings_defaults_and_cache():
    settings = config.get_settings()
    second = config.get_settings()

    assert settings is second
    assert settings.app_name == "VitalWatch API"
    assert settings.api_prefix == "/api/v1"
    assert settings.alert_suppression_window_seconds == 300
    assert settings.poor_quality_dampening is True


def test_settings_reject_unknown_notification_channel(monkeypatch):
    monkeypatch.setenv("NOTIFICATION_DEFAULT_CHANNELS", '["email", "carrier-pigeon"]')

    with pytest.raises(ValidationError):
        config.Settings()


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("ALERT_SUPPRESSION_WINDOW_SECONDS", "60")
    monkeypatch.setenv("NOTIFICATION_DEFAULT_CHANNELS", '["email", "webhook"]')

    settings = config.Settings()

    assert settings.alert_suppression_window_seconds == 60
    assert settings.notification_default_channels == ["email", "webhook"]


def test_main_app_metadata():
    from vitalwatch.main import app

    assert app.title == config.settings.app_name
    assert app.version == config.settings.app_version
    assert app.docs_url == "/docs"
    paths = {getattr(route, "path", None) for route in app.routes}
    assert "/api/v1/readings" in paths
    assert "/api/v1/alerts/{alert_id}/acknowledge" in paths
    assert "/api/v1/patients/{patient_id}/thresholds" in paths
    assert "/api/v1/devices/{device_id}/status" in paths
    assert "/ws" in paths


def test_service_packages_resolve_lazily():
    from vitalwatch import services
    from vitalwatch.services import monitoring
    from vitalwatch.services.monitoring.alerts import AlertManager
    from vitalwatch.services.monitoring.risk import score

    assert services.AlertManager is AlertManager
    assert monitoring.score is score
    with pytest.raises(AttributeError):
        services.DoesNotExist
