"""Alert raising with duplicate suppression, and the alert lifecycle.

Lifecycle::

    active -> acknowledged -> resolved
    active | acknowledged -> escalated -> resolved

``resolved`` is terminal. A repeated candidate for a (patient, type) pair that
already has an active alert refreshes that alert instead of creating a new
one; inside the suppression window the refresh is silent, outside it (or when
the severity rises) the alert is notified again.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from vitalwatch.errors import InvalidStateError, NotFoundError
from vitalwatch.models import SEVERITY_RANK, AlertSeverity, AlertStatus, AlertType
from vitalwatch.schemas.alerts import AlertResponse
from vitalwatch.services.monitoring.broadcaster import (
    ALERTS_TOPIC,
    Broadcaster,
    patient_topic,
)
from vitalwatch.services.monitoring.evaluator import AlertCandidate
from vitalwatch.services.monitoring.notifications import NotificationDispatcher
from vitalwatch.services.monitoring.risk import RiskLevel, RiskPrediction
from vitalwatch.services.stores import AlertStore, PatientContact, ThresholdStore

logger = logging.getLogger("vitalwatch.alerts")

DeliveryScope = Callable[[], AbstractAsyncContextManager[AlertStore]]

# Delivery tasks outlive the request that scheduled them.
_pending_deliveries: set[asyncio.Task] = set()


async def drain_notifications() -> None:
    """Wait for every scheduled notification delivery to finish."""
    while _pending_deliveries:
        await asyncio.gather(*list(_pending_deliveries), return_exceptions=True)


@dataclass
class RaiseResult:
    alert: Any
    created: bool
    notified: bool


def new_alert_id(now: datetime) -> str:
    return f"ALT-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def alert_payload(alert: Any) -> dict[str, Any]:
    return AlertResponse.model_validate(alert).model_dump(mode="json")


def _new_alert_values(
    candidate: AlertCandidate,
    patient_id: str,
    device_id: Optional[str],
    now: datetime,
) -> dict[str, Any]:
    return {
        "alert_id": new_alert_id(now),
        "patient_id": patient_id,
        "device_id": device_id,
        "alert_type": str(candidate.alert_type),
        "severity": str(candidate.severity),
        "status": AlertStatus.active.value,
        "title": candidate.title,
        "message": candidate.message,
        "data": candidate.snapshot(),
        "occurrence_count": 1,
        "last_triggered_at": now,
        "notifications": [],
    }


class AlertManager:
    """Creates alerts from candidates and drives their transitions."""

    _global_event_counters: Counter[str] = Counter()

    def __init__(
        self,
        alerts: AlertStore,
        *,
        broadcaster: Broadcaster,
        dispatcher: Optional[NotificationDispatcher] = None,
        contacts: Optional[ThresholdStore] = None,
        suppression_window_seconds: int = 300,
        background: bool = True,
        delivery_scope: Optional[DeliveryScope] = None,
        commit: Optional[Callable[[], Awaitable[None]]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.alerts = alerts
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher
        self.contacts = contacts
        self.suppression_window = timedelta(seconds=suppression_window_seconds)
        self.background = background
        self._delivery_scope = delivery_scope or self._request_scope
        # Makes the alert visible to the separate delivery session.
        self._commit = commit
        self._clock = clock

    @classmethod
    def get_global_event_counters(cls) -> dict[str, int]:
        """Process-wide counts of alert events, for the metrics endpoint."""
        return dict(cls._global_event_counters)

    def _count(self, event: str) -> None:
        self._global_event_counters[event] += 1

    @asynccontextmanager
    async def _request_scope(self) -> AsyncIterator[AlertStore]:
        yield self.alerts

    async def raise_alert(
        self,
        candidate: AlertCandidate,
        patient_id: str,
        device_id: Optional[str] = None,
    ) -> RaiseResult:
        """Create an active alert or refresh the existing one for the same type."""
        now = self._clock()
        values = _new_alert_values(candidate, patient_id, device_id, now)
        refresh: dict[str, bool] = {}

        def merge(existing: Any) -> dict[str, Any]:
            within_window = now - _aware(existing.last_triggered_at) < self.suppression_window
            upgraded = SEVERITY_RANK[candidate.severity] > SEVERITY_RANK[existing.severity]
            refresh.update(within_window=within_window, upgraded=upgraded)
            return {
                "severity": str(candidate.severity) if upgraded else existing.severity,
                "title": candidate.title,
                "message": candidate.message,
                "data": candidate.snapshot(),
                "occurrence_count": existing.occurrence_count + 1,
                "last_triggered_at": now,
                "device_id": device_id or existing.device_id,
            }

        alert, created = await self.alerts.upsert_active_alert(values, merge)
        notify = (
            created
            or refresh.get("upgraded", False)
            or not refresh.get("within_window", True)
        )
        self._count("created" if created else ("renotified" if notify else "suppressed"))
        if created:
            logger.info(
                "Raised %s alert %s (%s) for patient %s",
                alert.severity,
                alert.alert_id,
                alert.alert_type,
                patient_id,
            )
        elif notify:
            logger.info(
                "Re-notifying alert %s after %d occurrences",
                alert.alert_id,
                alert.occurrence_count,
            )
        else:
            logger.debug(
                "Suppressed duplicate %s alert for patient %s", alert.alert_type, patient_id
            )
        await self._after_transition(
            "alert.created" if created else "alert.updated", alert, notify=notify
        )
        return RaiseResult(alert=alert, created=created, notified=notify)

    async def raise_emergency(
        self,
        patient_id: str,
        device_id: Optional[str] = None,
        message: str = "Emergency assistance requested",
        location: Optional[dict[str, Any]] = None,
    ) -> RaiseResult:
        """Manual emergency (panic button).

        Every call creates its own alert and notifies; emergencies are never
        folded into an earlier active one.
        """
        candidate = AlertCandidate(
            alert_type=AlertType.emergency,
            severity=AlertSeverity.emergency,
            title="Emergency Alert",
            message=message,
            extra={"location": location} if location else {},
        )
        alert = await self.alerts.create_alert(
            _new_alert_values(candidate, patient_id, device_id, self._clock())
        )
        self._count("created")
        logger.warning(
            "Emergency alert %s raised for patient %s", alert.alert_id, patient_id
        )
        await self._after_transition("alert.created", alert, notify=True)
        return RaiseResult(alert=alert, created=True, notified=True)

    async def raise_prediction(
        self, prediction: RiskPrediction, device_id: Optional[str] = None
    ) -> Optional[RaiseResult]:
        """Persist a high or critical risk prediction as an alert."""
        if prediction.risk_level not in (RiskLevel.high, RiskLevel.critical):
            return None
        critical = prediction.risk_level == RiskLevel.critical
        candidate = AlertCandidate(
            alert_type=AlertType.prediction,
            severity=AlertSeverity.critical if critical else AlertSeverity.warning,
            title=f"Health Risk Prediction: {prediction.risk_level.upper()}",
            message=prediction.recommendation,
            value=prediction.risk_score,
            threshold=70 if critical else 50,
            extra={
                "prediction_id": prediction.prediction_id,
                "risk_level": str(prediction.risk_level),
                "confidence": prediction.confidence,
                "factors": [
                    {"factor": f.factor, "severity": f.severity, "value": f.value}
                    for f in prediction.factors
                ],
                "model_version": prediction.model_version,
            },
        )
        return await self.raise_alert(candidate, prediction.patient_id, device_id)

    async def _require(self, alert_id: str) -> Any:
        alert = await self.alerts.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        return alert

    async def acknowledge(self, alert_id: str, user_id: str) -> Any:
        alert = await self._require(alert_id)
        if alert.status == AlertStatus.resolved:
            raise InvalidStateError(f"Alert {alert_id} is already resolved")
        if alert.status != AlertStatus.active:
            raise InvalidStateError(
                f"Alert {alert_id} cannot be acknowledged from status {alert.status}"
            )
        alert = await self.alerts.update_alert(
            alert_id,
            {
                "status": AlertStatus.acknowledged.value,
                "acknowledged_by": user_id,
                "acknowledged_at": self._clock(),
            },
        )
        self._count("acknowledged")
        logger.info("Alert %s acknowledged by %s", alert_id, user_id)
        await self._after_transition("alert.updated", alert, notify=True)
        return alert

    async def resolve(
        self,
        alert_id: str,
        user_id: str,
        method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Any:
        alert = await self._require(alert_id)
        if alert.status == AlertStatus.resolved:
            raise InvalidStateError(f"Alert {alert_id} is already resolved")
        alert = await self.alerts.update_alert(
            alert_id,
            {
                "status": AlertStatus.resolved.value,
                "resolved_by": user_id,
                "resolved_at": self._clock(),
                "resolution_method": method or "manual",
                "resolution_notes": notes,
            },
        )
        self._count("resolved")
        logger.info("Alert %s resolved by %s", alert_id, user_id)
        await self._after_transition("alert.updated", alert, notify=True)
        return alert

    async def escalate(
        self,
        alert_id: str,
        level: int = 1,
        escalated_to: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Any:
        alert = await self._require(alert_id)
        if alert.status not in (AlertStatus.active, AlertStatus.acknowledged):
            raise InvalidStateError(
                f"Alert {alert_id} cannot be escalated from status {alert.status}"
            )
        alert = await self.alerts.update_alert(
            alert_id,
            {
                "status": AlertStatus.escalated.value,
                "severity": AlertSeverity.emergency.value,
                "escalation_level": level,
                "escalated_to": escalated_to,
                "escalation_reason": reason,
                "escalated_at": self._clock(),
            },
        )
        self._count("escalated")
        logger.warning("Alert %s escalated to level %d", alert_id, level)
        await self._after_transition("alert.escalated", alert, notify=True)
        return alert

    async def _after_transition(self, event: str, alert: Any, *, notify: bool) -> None:
        payload = alert_payload(alert)
        message = {"event": event, "alert": payload}
        for topic in (patient_topic(payload["patient_id"]), ALERTS_TOPIC):
            try:
                await self.broadcaster.publish(topic, message)
            except Exception:
                logger.exception("Broadcast of %s to %s failed", event, topic)

        if not notify or self.dispatcher is None:
            return
        contact = None
        if self.contacts is not None:
            try:
                contact = await self.contacts.get_contact(payload["patient_id"])
            except Exception:
                logger.exception(
                    "Contact lookup failed for patient %s", payload["patient_id"]
                )
        payload["event"] = event
        if self.background:
            if self._commit is not None:
                await self._commit()
            task = asyncio.create_task(
                self._deliver(contact, payload), name=f"notify-{payload['alert_id']}"
            )
            _pending_deliveries.add(task)
            task.add_done_callback(_pending_deliveries.discard)
        else:
            await self._deliver(contact, payload)

    async def _deliver(
        self, contact: Optional[PatientContact], payload: dict[str, Any]
    ) -> None:
        try:
            results = await self.dispatcher.dispatch(contact, payload)
            for result in results:
                self._count("notification_sent" if result.ok else "notification_failed")
            if not results:
                return
            async with self._delivery_scope() as store:
                await store.append_notifications(
                    payload["alert_id"], [result.to_log_entry() for result in results]
                )
        except Exception:
            logger.exception("Notification delivery failed for alert %s", payload["alert_id"])
