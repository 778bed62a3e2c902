"""Storage-agnostic stores for readings, alerts, devices and patient settings.

Each store is a ``Protocol`` with a SQLAlchemy implementation and an
in-memory implementation. The monitoring core only talks to the protocols.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import Any, Optional, Protocol, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vitalwatch.errors import ConflictError, DependencyError, NotFoundError
from vitalwatch.models import (
    Alert,
    AlertStatus,
    Device,
    DeviceStatus,
    DeviceType,
    PatientAlertSettings,
    VitalReading,
)

SeverityFilter = Union[str, Iterable[str], None]
AlertMerge = Callable[[Any], dict[str, Any]]


@dataclass
class PatientContact:
    patient_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    push_token: Optional[str] = None
    alert_methods: list[str] = field(default_factory=list)


# Statuses set by an operator that a heartbeat must not override.
_PINNED_DEVICE_STATUSES = {DeviceStatus.maintenance, DeviceStatus.retired}


def _new_device_values(device_id: str, patient_id: Optional[str]) -> dict[str, Any]:
    return {
        "device_id": device_id,
        "name": device_id,
        "device_type": DeviceType.esp32.value,
        "patient_id": patient_id,
        "status": DeviceStatus.offline.value,
        "last_data": {},
    }


def _heartbeat_patch(
    device: Any,
    seen_at: datetime,
    patient_id: Optional[str],
    telemetry: Optional[dict[str, Any]],
    last_data: Optional[dict[str, Any]],
) -> dict[str, Any]:
    patch: dict[str, Any] = {"last_seen_at": seen_at}
    if device.status not in _PINNED_DEVICE_STATUSES:
        patch["status"] = DeviceStatus.online.value
    if patient_id:
        patch["patient_id"] = patient_id
    for key, value in (telemetry or {}).items():
        if value is not None:
            patch[key] = value
    if last_data is not None:
        patch["last_data"] = dict(last_data)
    return patch


class ReadingStore(Protocol):
    async def add_reading(self, values: dict[str, Any]):
        ...

    async def list_readings(
        self,
        patient_id: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list:
        ...

    async def latest_reading(self, patient_id: str):
        ...

    async def count_readings(
        self, patient_id: str, *, since: Optional[datetime] = None
    ) -> int:
        ...

    def savepoint(self) -> AbstractAsyncContextManager[None]:
        """Scope whose writes are undone together if the block raises."""
        ...


class AlertStore(Protocol):
    async def find_active_alert(self, patient_id: str, alert_type: str):
        ...

    async def create_alert(self, values: dict[str, Any]):
        ...

    async def update_alert(self, alert_id: str, patch: dict[str, Any]):
        ...

    async def upsert_active_alert(
        self, values: dict[str, Any], merge: AlertMerge
    ) -> tuple[Any, bool]:
        """Create an active alert or merge into the existing one atomically.

        Returns the stored alert and whether it was newly created.
        """
        ...

    async def get_alert(self, alert_id: str):
        ...

    async def list_alerts(
        self,
        *,
        patient_id: Optional[str] = None,
        status: Optional[str] = None,
        severity: SeverityFilter = None,
        alert_type: Optional[str] = None,
        since: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list:
        ...

    async def count_alerts(
        self,
        *,
        patient_id: Optional[str] = None,
        alert_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        ...

    async def append_notifications(
        self, alert_id: str, entries: list[dict[str, Any]]
    ) -> None:
        ...


class DeviceStore(Protocol):
    async def register_device(self, values: dict[str, Any]):
        ...

    async def get_device(self, device_id: str):
        ...

    async def list_devices(
        self,
        *,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        seen_since: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list:
        ...

    async def count_devices(
        self,
        *,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        seen_since: Optional[datetime] = None,
    ) -> int:
        ...

    async def status_counts(self) -> dict[str, int]:
        ...

    async def update_device(self, device_id: str, patch: dict[str, Any]):
        ...

    async def delete_device(self, device_id: str) -> None:
        ...

    async def record_heartbeat(
        self,
        device_id: str,
        *,
        seen_at: datetime,
        patient_id: Optional[str] = None,
        telemetry: Optional[dict[str, Any]] = None,
        last_data: Optional[dict[str, Any]] = None,
    ):
        """Mark a device as seen, registering it first if it is unknown."""
        ...


class ThresholdStore(Protocol):
    async def get_thresholds(self, patient_id: str) -> Optional[dict[str, Any]]:
        ...

    async def set_thresholds(
        self, patient_id: str, thresholds: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    async def get_contact(self, patient_id: str) -> Optional[PatientContact]:
        ...

    async def set_contact(self, contact: PatientContact) -> PatientContact:
        ...


class _SQLStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, statement):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as exc:
            raise DependencyError(f"Database unavailable: {exc.__class__.__name__}") from exc

    async def _flush(self, instance=None) -> None:
        try:
            await self.db.flush()
            if instance is not None:
                await self.db.refresh(instance)
        except SQLAlchemyError as exc:
            raise DependencyError(f"Database unavailable: {exc.__class__.__name__}") from exc

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Run the block inside a SAVEPOINT on the shared session.

        A commit issued inside the block (background notification delivery
        does this) ends the savepoint; a later failure then rolls back only
        the work done since that commit.
        """
        try:
            nested = await self.db.begin_nested()
        except SQLAlchemyError as exc:
            raise DependencyError(f"Database unavailable: {exc.__class__.__name__}") from exc
        try:
            yield
        except Exception:
            if self.db.in_nested_transaction():
                await nested.rollback()
            else:
                await self.db.rollback()
            raise
        if self.db.in_nested_transaction():
            await nested.commit()


class SQLReadingStore(_SQLStore):
    """Reading store backed by SQLAlchemy."""

    async def add_reading(self, values: dict[str, Any]) -> VitalReading:
        reading = VitalReading(**values)
        self.db.add(reading)
        await self._flush(reading)
        return reading

    async def list_readings(
        self,
        patient_id: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[VitalReading]:
        query = select(VitalReading).where(VitalReading.patient_id == patient_id)
        if since is not None:
            query = query.where(VitalReading.recorded_at >= since)
        if until is not None:
            query = query.where(VitalReading.recorded_at <= until)
        query = (
            query.order_by(VitalReading.recorded_at.desc(), VitalReading.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self._execute(query)
        return list(result.scalars().all())

    async def latest_reading(self, patient_id: str) -> Optional[VitalReading]:
        readings = await self.list_readings(patient_id, limit=1)
        return readings[0] if readings else None

    async def count_readings(
        self, patient_id: str, *, since: Optional[datetime] = None
    ) -> int:
        query = select(func.count(VitalReading.id)).where(
            VitalReading.patient_id == patient_id
        )
        if since is not None:
            query = query.where(VitalReading.recorded_at >= since)
        result = await self._execute(query)
        return int(result.scalar_one_or_none() or 0)


class SQLAlertStore(_SQLStore):
    """Alert store backed by SQLAlchemy.

    Active-alert uniqueness is enforced by the partial unique index on
    (patient_id, alert_type) where status is active, emergencies excepted.
    """

    def _active_query(self, patient_id: str, alert_type: str):
        return select(Alert).where(
            Alert.patient_id == patient_id,
            Alert.alert_type == alert_type,
            Alert.status == AlertStatus.active,
        )

    async def find_active_alert(self, patient_id: str, alert_type: str) -> Optional[Alert]:
        result = await self._execute(self._active_query(patient_id, alert_type))
        return result.scalar_one_or_none()

    async def create_alert(self, values: dict[str, Any]) -> Alert:
        alert = Alert(**values)
        self.db.add(alert)
        await self._flush(alert)
        return alert

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        result = await self._execute(select(Alert).where(Alert.alert_id == alert_id))
        return result.scalar_one_or_none()

    def _apply(self, alert: Alert, patch: dict[str, Any]) -> None:
        for key, value in patch.items():
            setattr(alert, key, value)

    async def update_alert(self, alert_id: str, patch: dict[str, Any]) -> Alert:
        alert = await self.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        self._apply(alert, patch)
        await self._flush(alert)
        return alert

    async def upsert_active_alert(
        self, values: dict[str, Any], merge: AlertMerge
    ) -> tuple[Alert, bool]:
        query = self._active_query(values["patient_id"], values["alert_type"])
        result = await self._execute(query.with_for_update())
        existing = result.scalar_one_or_none()
        if existing is None:
            alert = Alert(**values)
            try:
                async with self.db.begin_nested():
                    self.db.add(alert)
                    await self.db.flush()
            except IntegrityError:
                # A concurrent writer created the active row first.
                result = await self._execute(query.with_for_update())
                existing = result.scalar_one_or_none()
                if existing is None:
                    raise
            else:
                await self._flush(alert)
                return alert, True
        self._apply(existing, merge(existing))
        await self._flush(existing)
        return existing, False

    async def list_alerts(
        self,
        *,
        patient_id: Optional[str] = None,
        status: Optional[str] = None,
        severity: SeverityFilter = None,
        alert_type: Optional[str] = None,
        since: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Alert]:
        query = select(Alert)
        if patient_id:
            query = query.where(Alert.patient_id == patient_id)
        if status:
            query = query.where(Alert.status == status)
        if severity:
            if isinstance(severity, str):
                query = query.where(Alert.severity == severity)
            else:
                query = query.where(Alert.severity.in_(list(severity)))
        if alert_type:
            query = query.where(Alert.alert_type == alert_type)
        if since is not None:
            query = query.where(Alert.created_at >= since)
        query = query.order_by(Alert.created_at.desc(), Alert.id.desc()).offset(skip).limit(limit)
        result = await self._execute(query)
        return list(result.scalars().all())

    async def count_alerts(
        self,
        *,
        patient_id: Optional[str] = None,
        alert_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        query = select(func.count(Alert.id))
        if patient_id:
            query = query.where(Alert.patient_id == patient_id)
        if alert_type:
            query = query.where(Alert.alert_type == alert_type)
        if since is not None:
            query = query.where(Alert.created_at >= since)
        result = await self._execute(query)
        return int(result.scalar_one_or_none() or 0)

    async def append_notifications(
        self, alert_id: str, entries: list[dict[str, Any]]
    ) -> None:
        alert = await self.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        alert.notifications = [*(alert.notifications or []), *entries]
        await self._flush()


class SQLThresholdStore(_SQLStore):
    """Patient alert settings backed by SQLAlchemy."""

    async def _get_row(self, patient_id: str) -> Optional[PatientAlertSettings]:
        result = await self._execute(
            select(PatientAlertSettings).where(
                PatientAlertSettings.patient_id == patient_id
            )
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, patient_id: str) -> PatientAlertSettings:
        row = await self._get_row(patient_id)
        if row is None:
            row = PatientAlertSettings(patient_id=patient_id, thresholds={}, alert_methods=[])
            self.db.add(row)
        return row

    async def get_thresholds(self, patient_id: str) -> Optional[dict[str, Any]]:
        row = await self._get_row(patient_id)
        if row is None or not row.thresholds:
            return None
        return dict(row.thresholds)

    async def set_thresholds(
        self, patient_id: str, thresholds: dict[str, Any]
    ) -> dict[str, Any]:
        row = await self._get_or_create(patient_id)
        row.thresholds = dict(thresholds)
        await self._flush()
        return dict(row.thresholds)

    async def get_contact(self, patient_id: str) -> Optional[PatientContact]:
        row = await self._get_row(patient_id)
        if row is None:
            return None
        return PatientContact(
            patient_id=row.patient_id,
            email=row.email,
            phone=row.phone,
            push_token=row.push_token,
            alert_methods=list(row.alert_methods or []),
        )

    async def set_contact(self, contact: PatientContact) -> PatientContact:
        row = await self._get_or_create(contact.patient_id)
        row.email = contact.email
        row.phone = contact.phone
        row.push_token = contact.push_token
        row.alert_methods = list(contact.alert_methods)
        await self._flush()
        return contact


class SQLDeviceStore(_SQLStore):
    """Device registry backed by SQLAlchemy."""

    def _filtered(self, query, status, patient_id, seen_since):
        if status:
            query = query.where(Device.status == status)
        if patient_id:
            query = query.where(Device.patient_id == patient_id)
        if seen_since is not None:
            query = query.where(Device.last_seen_at >= seen_since)
        return query

    async def get_device(self, device_id: str) -> Optional[Device]:
        result = await self._execute(select(Device).where(Device.device_id == device_id))
        return result.scalar_one_or_none()

    async def register_device(self, values: dict[str, Any]) -> Device:
        device = Device(**values)
        try:
            async with self.db.begin_nested():
                self.db.add(device)
                await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Device {values['device_id']} already registered") from exc
        await self._flush(device)
        return device

    async def list_devices(
        self,
        *,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        seen_since: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Device]:
        query = self._filtered(select(Device), status, patient_id, seen_since)
        query = query.order_by(Device.created_at.desc(), Device.id.desc()).offset(skip).limit(limit)
        result = await self._execute(query)
        return list(result.scalars().all())

    async def count_devices(
        self,
        *,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        seen_since: Optional[datetime] = None,
    ) -> int:
        query = self._filtered(select(func.count(Device.id)), status, patient_id, seen_since)
        result = await self._execute(query)
        return int(result.scalar_one_or_none() or 0)

    async def status_counts(self) -> dict[str, int]:
        result = await self._execute(
            select(Device.status, func.count(Device.id)).group_by(Device.status)
        )
        return {status: int(count) for status, count in result.all()}

    async def update_device(self, device_id: str, patch: dict[str, Any]) -> Device:
        device = await self.get_device(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found")
        for key, value in patch.items():
            setattr(device, key, value)
        await self._flush(device)
        return device

    async def delete_device(self, device_id: str) -> None:
        device = await self.get_device(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found")
        await self.db.delete(device)
        await self._flush()

    async def record_heartbeat(
        self,
        device_id: str,
        *,
        seen_at: datetime,
        patient_id: Optional[str] = None,
        telemetry: Optional[dict[str, Any]] = None,
        last_data: Optional[dict[str, Any]] = None,
    ) -> Device:
        query = select(Device).where(Device.device_id == device_id).with_for_update()
        result = await self._execute(query)
        device = result.scalar_one_or_none()
        if device is None:
            device = Device(**_new_device_values(device_id, patient_id))
            try:
                async with self.db.begin_nested():
                    self.db.add(device)
                    await self.db.flush()
            except IntegrityError:
                # Registered concurrently by another request.
                result = await self._execute(query)
                device = result.scalar_one_or_none()
                if device is None:
                    raise
        for key, value in _heartbeat_patch(
            device, seen_at, patient_id, telemetry, last_data
        ).items():
            setattr(device, key, value)
        await self._flush(device)
        return device


@asynccontextmanager
async def sql_alert_store_scope() -> AsyncIterator[SQLAlertStore]:
    """Alert store bound to its own session, for work outside a request."""
    from vitalwatch.database import get_db_context

    async with get_db_context() as db:
        yield SQLAlertStore(db)


@dataclass
class InMemoryReading:
    id: int
    patient_id: str
    device_id: str
    recorded_at: datetime
    created_at: datetime
    updated_at: datetime
    status: str = "normal"
    heart_rate: Optional[float] = None
    heart_rate_unit: Optional[str] = None
    heart_rate_quality: Optional[str] = None
    temperature: Optional[float] = None
    temperature_unit: Optional[str] = None
    temperature_quality: Optional[str] = None
    spo2: Optional[float] = None
    spo2_unit: Optional[str] = None
    spo2_quality: Optional[str] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    blood_pressure_unit: Optional[str] = None
    blood_pressure_quality: Optional[str] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    firmware_version: Optional[str] = None


@dataclass
class InMemoryAlert:
    id: int
    alert_id: str
    patient_id: str
    alert_type: str
    severity: str
    title: str
    message: str
    last_triggered_at: datetime
    created_at: datetime
    updated_at: datetime
    device_id: Optional[str] = None
    status: str = AlertStatus.active
    data: dict[str, Any] = field(default_factory=dict)
    occurrence_count: int = 1
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_method: Optional[str] = None
    resolution_notes: Optional[str] = None
    escalation_level: Optional[int] = None
    escalated_to: Optional[str] = None
    escalation_reason: Optional[str] = None
    escalated_at: Optional[datetime] = None
    notifications: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class InMemoryDevice:
    id: int
    device_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    device_type: str = DeviceType.esp32.value
    patient_id: Optional[str] = None
    status: str = DeviceStatus.offline.value
    firmware_version: Optional[str] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    last_seen_at: Optional[datetime] = None
    last_data: dict[str, Any] = field(default_factory=dict)


_ALERT_FIELDS = {item.name for item in fields(InMemoryAlert)}
_DEVICE_FIELDS = {item.name for item in fields(InMemoryDevice)}


class InMemoryReadingStore:
    """In-memory reading store for tests and local demos."""

    def __init__(self):
        self._readings: list[InMemoryReading] = []
        self._next_id = 1

    async def add_reading(self, values: dict[str, Any]) -> InMemoryReading:
        now = datetime.now(UTC)
        reading = InMemoryReading(
            id=self._next_id, created_at=now, updated_at=now, **values
        )
        self._readings.append(reading)
        self._next_id += 1
        return reading

    async def list_readings(
        self,
        patient_id: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[InMemoryReading]:
        readings = [r for r in self._readings if r.patient_id == patient_id]
        if since is not None:
            readings = [r for r in readings if r.recorded_at >= since]
        if until is not None:
            readings = [r for r in readings if r.recorded_at <= until]
        readings.sort(key=lambda r: (r.recorded_at, r.id), reverse=True)
        return readings[skip : skip + limit]

    async def latest_reading(self, patient_id: str) -> Optional[InMemoryReading]:
        readings = await self.list_readings(patient_id, limit=1)
        return readings[0] if readings else None

    async def count_readings(
        self, patient_id: str, *, since: Optional[datetime] = None
    ) -> int:
        return len(
            [
                r
                for r in self._readings
                if r.patient_id == patient_id and (since is None or r.recorded_at >= since)
            ]
        )

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        yield

    def clear(self) -> None:
        self._readings.clear()
        self._next_id = 1


class InMemoryAlertStore:
    """In-memory alert store; upserts are serialized by an asyncio lock."""

    def __init__(self):
        self._alerts: list[InMemoryAlert] = []
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def find_active_alert(
        self, patient_id: str, alert_type: str
    ) -> Optional[InMemoryAlert]:
        for alert in self._alerts:
            if (
                alert.patient_id == patient_id
                and alert.alert_type == alert_type
                and alert.status == AlertStatus.active
            ):
                return alert
        return None

    def _insert(self, values: dict[str, Any]) -> InMemoryAlert:
        now = datetime.now(UTC)
        payload = {key: value for key, value in values.items() if key in _ALERT_FIELDS}
        payload.setdefault("created_at", now)
        payload.setdefault("updated_at", now)
        alert = InMemoryAlert(id=self._next_id, **payload)
        self._alerts.append(alert)
        self._next_id += 1
        return alert

    def _apply(self, alert: InMemoryAlert, patch: dict[str, Any]) -> InMemoryAlert:
        for key, value in patch.items():
            setattr(alert, key, value)
        alert.updated_at = datetime.now(UTC)
        return alert

    async def create_alert(self, values: dict[str, Any]) -> InMemoryAlert:
        async with self._lock:
            return self._insert(values)

    async def get_alert(self, alert_id: str) -> Optional[InMemoryAlert]:
        for alert in self._alerts:
            if alert.alert_id == alert_id:
                return alert
        return None

    async def update_alert(self, alert_id: str, patch: dict[str, Any]) -> InMemoryAlert:
        async with self._lock:
            alert = await self.get_alert(alert_id)
            if alert is None:
                raise NotFoundError(f"Alert {alert_id} not found")
            return self._apply(alert, patch)

    async def upsert_active_alert(
        self, values: dict[str, Any], merge: AlertMerge
    ) -> tuple[InMemoryAlert, bool]:
        async with self._lock:
            existing = await self.find_active_alert(
                values["patient_id"], values["alert_type"]
            )
            if existing is None:
                return self._insert(values), True
            return self._apply(existing, merge(existing)), False

    async def list_alerts(
        self,
        *,
        patient_id: Optional[str] = None,
        status: Optional[str] = None,
        severity: SeverityFilter = None,
        alert_type: Optional[str] = None,
        since: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[InMemoryAlert]:
        alerts = list(self._alerts)
        if patient_id:
            alerts = [a for a in alerts if a.patient_id == patient_id]
        if status:
            alerts = [a for a in alerts if a.status == status]
        if severity:
            allowed = {severity} if isinstance(severity, str) else set(severity)
            alerts = [a for a in alerts if a.severity in allowed]
        if alert_type:
            alerts = [a for a in alerts if a.alert_type == alert_type]
        if since is not None:
            alerts = [a for a in alerts if a.created_at >= since]
        alerts.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return alerts[skip : skip + limit]

    async def count_alerts(
        self,
        *,
        patient_id: Optional[str] = None,
        alert_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        alerts = await self.list_alerts(
            patient_id=patient_id,
            alert_type=alert_type,
            since=since,
            limit=len(self._alerts),
        )
        return len(alerts)

    async def append_notifications(
        self, alert_id: str, entries: list[dict[str, Any]]
    ) -> None:
        async with self._lock:
            alert = await self.get_alert(alert_id)
            if alert is None:
                raise NotFoundError(f"Alert {alert_id} not found")
            alert.notifications = [*alert.notifications, *entries]

    def clear(self) -> None:
        self._alerts.clear()
        self._next_id = 1


class InMemoryThresholdStore:
    """In-memory patient settings store."""

    def __init__(self):
        self._thresholds: dict[str, dict[str, Any]] = {}
        self._contacts: dict[str, PatientContact] = {}

    async def get_thresholds(self, patient_id: str) -> Optional[dict[str, Any]]:
        thresholds = self._thresholds.get(patient_id)
        return dict(thresholds) if thresholds else None

    async def set_thresholds(
        self, patient_id: str, thresholds: dict[str, Any]
    ) -> dict[str, Any]:
        self._thresholds[patient_id] = dict(thresholds)
        return dict(thresholds)

    async def get_contact(self, patient_id: str) -> Optional[PatientContact]:
        return self._contacts.get(patient_id)

    async def set_contact(self, contact: PatientContact) -> PatientContact:
        self._contacts[contact.patient_id] = contact
        return contact

    def clear(self) -> None:
        self._thresholds.clear()
        self._contacts.clear()


class InMemoryDeviceStore:
    """In-memory device registry; heartbeats are serialized by an asyncio lock."""

    def __init__(self):
        self._devices: dict[str, InMemoryDevice] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    def _insert(self, values: dict[str, Any]) -> InMemoryDevice:
        if values["device_id"] in self._devices:
            raise ConflictError(f"Device {values['device_id']} already registered")
        now = datetime.now(UTC)
        payload = {key: value for key, value in values.items() if key in _DEVICE_FIELDS}
        payload.setdefault("created_at", now)
        payload.setdefault("updated_at", now)
        device = InMemoryDevice(id=self._next_id, **payload)
        self._devices[device.device_id] = device
        self._next_id += 1
        return device

    def _apply(self, device: InMemoryDevice, patch: dict[str, Any]) -> InMemoryDevice:
        for key, value in patch.items():
            setattr(device, key, value)
        device.updated_at = datetime.now(UTC)
        return device

    async def register_device(self, values: dict[str, Any]) -> InMemoryDevice:
        async with self._lock:
            return self._insert(values)

    async def get_device(self, device_id: str) -> Optional[InMemoryDevice]:
        return self._devices.get(device_id)

    def _matching(self, status, patient_id, seen_since) -> list[InMemoryDevice]:
        devices = list(self._devices.values())
        if status:
            devices = [d for d in devices if d.status == status]
        if patient_id:
            devices = [d for d in devices if d.patient_id == patient_id]
        if seen_since is not None:
            devices = [
                d for d in devices if d.last_seen_at is not None and d.last_seen_at >= seen_since
            ]
        return devices

    async def list_devices(
        self,
        *,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        seen_since: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[InMemoryDevice]:
        devices = self._matching(status, patient_id, seen_since)
        devices.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return devices[skip : skip + limit]

    async def count_devices(
        self,
        *,
        status: Optional[str] = None,
        patient_id: Optional[str] = None,
        seen_since: Optional[datetime] = None,
    ) -> int:
        return len(self._matching(status, patient_id, seen_since))

    async def status_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for device in self._devices.values():
            counts[device.status] = counts.get(device.status, 0) + 1
        return counts

    async def update_device(self, device_id: str, patch: dict[str, Any]) -> InMemoryDevice:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise NotFoundError(f"Device {device_id} not found")
            return self._apply(device, patch)

    async def delete_device(self, device_id: str) -> None:
        async with self._lock:
            if self._devices.pop(device_id, None) is None:
                raise NotFoundError(f"Device {device_id} not found")

    async def record_heartbeat(
        self,
        device_id: str,
        *,
        seen_at: datetime,
        patient_id: Optional[str] = None,
        telemetry: Optional[dict[str, Any]] = None,
        last_data: Optional[dict[str, Any]] = None,
    ) -> InMemoryDevice:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                device = self._insert(_new_device_values(device_id, patient_id))
            return self._apply(
                device, _heartbeat_patch(device, seen_at, patient_id, telemetry, last_data)
            )

    def clear(self) -> None:
        self._devices.clear()
        self._next_id = 1
