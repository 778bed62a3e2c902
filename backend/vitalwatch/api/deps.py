"""Shared API dependencies: API-key guard, stores and monitoring services."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from vitalwatch.config import settings
from vitalwatch.database import get_db
from vitalwatch.errors import VitalWatchError
from vitalwatch.services.monitoring.alerts import AlertManager
from vitalwatch.services.monitoring.broadcaster import Broadcaster, WebSocketBroadcaster
from vitalwatch.services.monitoring.notifications import NotificationDispatcher
from vitalwatch.services.monitoring.pipeline import MonitoringService
from vitalwatch.services.stores import (
    AlertStore,
    DeviceStore,
    InMemoryAlertStore,
    InMemoryDeviceStore,
    InMemoryReadingStore,
    InMemoryThresholdStore,
    ReadingStore,
    SQLAlertStore,
    SQLDeviceStore,
    SQLReadingStore,
    SQLThresholdStore,
    ThresholdStore,
    sql_alert_store_scope,
)

_broadcaster = WebSocketBroadcaster()
_dispatcher = NotificationDispatcher()
_memory_readings = InMemoryReadingStore()
_memory_alerts = InMemoryAlertStore()
_memory_thresholds = InMemoryThresholdStore()
_memory_devices = InMemoryDeviceStore()


async def require_api_key(x_api_key: str | None = Header(None, alias="X-API-Key")):
    """Require API key when configured."""
    if not settings.api_key:
        return None
    if x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return None


def http_error(exc: VitalWatchError) -> HTTPException:
    """Translate a domain error, keeping its type for the error envelope."""
    error = HTTPException(status_code=exc.status_code, detail=exc.message)
    error.error_type = exc.error_type
    return error


def get_broadcaster() -> Broadcaster:
    return _broadcaster


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def get_reading_store(db: AsyncSession = Depends(get_db)) -> ReadingStore:
    if settings.storage_backend == "memory":
        return _memory_readings
    return SQLReadingStore(db)


def get_alert_store(db: AsyncSession = Depends(get_db)) -> AlertStore:
    if settings.storage_backend == "memory":
        return _memory_alerts
    return SQLAlertStore(db)


def get_threshold_store(db: AsyncSession = Depends(get_db)) -> ThresholdStore:
    if settings.storage_backend == "memory":
        return _memory_thresholds
    return SQLThresholdStore(db)


def get_device_store(db: AsyncSession = Depends(get_db)) -> DeviceStore:
    if settings.storage_backend == "memory":
        return _memory_devices
    return SQLDeviceStore(db)


def get_alert_manager(
    alerts: AlertStore = Depends(get_alert_store),
    thresholds: ThresholdStore = Depends(get_threshold_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_dispatcher),
) -> AlertManager:
    sql_backed = isinstance(alerts, SQLAlertStore)
    return AlertManager(
        alerts,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        contacts=thresholds,
        suppression_window_seconds=settings.alert_suppression_window_seconds,
        background=settings.notify_in_background,
        delivery_scope=sql_alert_store_scope if sql_backed else None,
        commit=alerts.db.commit if sql_backed else None,
    )


def get_monitoring_service(
    readings: ReadingStore = Depends(get_reading_store),
    thresholds: ThresholdStore = Depends(get_threshold_store),
    alert_manager: AlertManager = Depends(get_alert_manager),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    devices: DeviceStore = Depends(get_device_store),
) -> MonitoringService:
    return MonitoringService(
        readings, thresholds, alert_manager, broadcaster, devices=devices
    )
