"""Ingestion and prediction flows over the monitoring components."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from vitalwatch.config import Settings, settings
from vitalwatch.errors import VitalWatchError
from vitalwatch.models import ReadingStatus
from vitalwatch.schemas.readings import ReadingResponse
from vitalwatch.services.monitoring.alerts import AlertManager
from vitalwatch.services.monitoring.broadcaster import Broadcaster, patient_topic
from vitalwatch.services.monitoring.devices import reading_snapshot, reading_telemetry
from vitalwatch.services.monitoring.evaluator import Evaluation, evaluate
from vitalwatch.services.monitoring.risk import RiskPrediction, score
from vitalwatch.services.monitoring.validator import NormalizedReading, validate
from vitalwatch.services.stores import DeviceStore, ReadingStore, ThresholdStore

logger = logging.getLogger("vitalwatch.monitoring")


@dataclass
class IngestionOutcome:
    reading: Any
    normalized: NormalizedReading
    evaluation: Evaluation
    alerts: list[Any] = field(default_factory=list)
    prediction: Optional[RiskPrediction] = None


@dataclass
class BatchOutcome:
    processed: int = 0
    failed: int = 0
    alerts_raised: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)


class MonitoringService:
    """Validate, evaluate, store and alert for incoming readings."""

    def __init__(
        self,
        readings: ReadingStore,
        thresholds: ThresholdStore,
        alert_manager: AlertManager,
        broadcaster: Broadcaster,
        *,
        devices: Optional[DeviceStore] = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.readings = readings
        self.thresholds = thresholds
        self.alert_manager = alert_manager
        self.broadcaster = broadcaster
        self.devices = devices
        self.config = config
        self._clock = clock

    async def ingest(self, payload: Mapping[str, Any]) -> IngestionOutcome:
        normalized = validate(payload, clock=self._clock)
        overrides = await self.thresholds.get_thresholds(normalized.patient_id)
        evaluation = evaluate(
            normalized,
            overrides,
            dampen_poor_quality=self.config.poor_quality_dampening,
            low_battery_threshold=self.config.low_battery_threshold,
        )
        if normalized.range_issues:
            logger.warning(
                "Reading from device %s has out-of-range values: %s",
                normalized.device_id,
                "; ".join(str(issue) for issue in normalized.range_issues),
            )

        record = await self.readings.add_reading(
            {**normalized.to_record_fields(), "status": str(evaluation.status)}
        )
        if self.devices is not None:
            await self.devices.record_heartbeat(
                normalized.device_id,
                seen_at=self._clock(),
                patient_id=normalized.patient_id,
                telemetry=reading_telemetry(normalized),
                last_data=reading_snapshot(normalized),
            )
        await self._publish(
            normalized.patient_id,
            {
                "event": "reading.created",
                "reading": ReadingResponse.model_validate(record).model_dump(mode="json"),
            },
        )

        outcome = IngestionOutcome(
            reading=record, normalized=normalized, evaluation=evaluation
        )
        for candidate in evaluation.alerts:
            result = await self.alert_manager.raise_alert(
                candidate, normalized.patient_id, normalized.device_id
            )
            outcome.alerts.append(result.alert)

        if self.config.risk_auto_predict_on_ingest and evaluation.status in (
            ReadingStatus.warning,
            ReadingStatus.critical,
        ):
            outcome.prediction, prediction_alert = await self.predict_risk(
                normalized.patient_id, device_id=normalized.device_id
            )
            if prediction_alert is not None:
                outcome.alerts.append(prediction_alert)
        return outcome

    async def ingest_batch(self, payloads: Sequence[Mapping[str, Any]]) -> BatchOutcome:
        """Ingest each payload independently; a bad item is reported, not fatal.

        Each item runs in its own savepoint so a storage failure part way
        through one item leaves earlier items intact.
        """
        batch = BatchOutcome()
        for index, payload in enumerate(payloads):
            try:
                async with self.readings.savepoint():
                    outcome = await self.ingest(payload)
            except VitalWatchError as exc:
                batch.failed += 1
                batch.errors.append(
                    {"index": index, "type": exc.error_type, "message": exc.message}
                )
                continue
            batch.processed += 1
            batch.alerts_raised += len(outcome.alerts)
        logger.info(
            "Batch ingestion finished: %d processed, %d failed",
            batch.processed,
            batch.failed,
        )
        return batch

    async def predict_risk(
        self,
        patient_id: str,
        *,
        window: Optional[int] = None,
        device_id: Optional[str] = None,
        raise_alert: bool = True,
    ) -> tuple[RiskPrediction, Optional[Any]]:
        now = self._clock()
        recent = await self.readings.list_readings(
            patient_id, limit=window or self.config.risk_window_size
        )
        prior_alerts = await self.alert_manager.alerts.count_alerts(
            patient_id=patient_id,
            since=now - timedelta(hours=self.config.risk_alert_history_hours),
        )
        prediction = score(
            recent,
            prior_alerts,
            patient_id=patient_id,
            alert_history_threshold=self.config.risk_alert_history_threshold,
            clock=lambda: now,
        )
        logger.info(
            "Risk for patient %s: %d (%s) from %d readings",
            patient_id,
            prediction.risk_score,
            prediction.risk_level,
            len(recent),
        )

        alert = None
        if raise_alert:
            result = await self.alert_manager.raise_prediction(prediction, device_id)
            alert = result.alert if result else None
        await self._publish(
            patient_id,
            {
                "event": "prediction.created",
                "prediction": {
                    "prediction_id": prediction.prediction_id,
                    "risk_score": prediction.risk_score,
                    "risk_level": str(prediction.risk_level),
                    "alert_id": alert.alert_id if alert is not None else None,
                },
            },
        )
        return prediction, alert

    async def _publish(self, patient_id: str, message: dict[str, Any]) -> None:
        try:
            await self.broadcaster.publish(patient_topic(patient_id), message)
        except Exception:
            logger.exception("Broadcast to patient %s failed", patient_id)
