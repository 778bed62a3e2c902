from datetime import UTC, datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from vitalwatch.api.deps import get_monitoring_service, get_reading_store, http_error
from vitalwatch.errors import VitalWatchError
from vitalwatch.schemas.alerts import AlertResponse
from vitalwatch.schemas.readings import (
    BatchIngestRequest,
    BatchIngestResponse,
    IngestResponse,
    ReadingResponse,
    ReadingSummaryResponse,
)
from vitalwatch.services.monitoring.analytics import SUMMARY_PERIODS, summarize_readings
from vitalwatch.services.monitoring.pipeline import MonitoringService
from vitalwatch.services.stores import ReadingStore

router = APIRouter(prefix="/readings", tags=["Readings"])

_EXAMPLE_READING = {
    "patientId": "PAT-001",
    "deviceId": "DEV-001",
    "heartRate": {"value": 72, "unit": "bpm"},
    "temperature": 36.8,
    "spo2": 98,
    "bloodPressure": {"systolic": 118, "diastolic": 76},
    "metadata": {"batteryLevel": 85},
}


@router.post("", response_model=IngestResponse, status_code=201)
async def ingest_reading(
    payload: dict[str, Any] = Body(..., examples=[_EXAMPLE_READING]),
    service: MonitoringService = Depends(get_monitoring_service),
):
    """Validate, evaluate and store one device reading."""
    try:
        outcome = await service.ingest(payload)
    except VitalWatchError as exc:
        raise http_error(exc)

    return IngestResponse(
        reading=ReadingResponse.model_validate(outcome.reading),
        status=str(outcome.evaluation.status),
        vitals={name: str(value) for name, value in outcome.evaluation.vitals.items()},
        alerts=[AlertResponse.model_validate(alert) for alert in outcome.alerts],
        range_issues=[str(issue) for issue in outcome.normalized.range_issues],
    )


@router.post("/batch", response_model=BatchIngestResponse)
async def ingest_batch(
    request: BatchIngestRequest,
    service: MonitoringService = Depends(get_monitoring_service),
):
    """Ingest readings buffered by a device while offline."""
    try:
        batch = await service.ingest_batch(request.readings)
    except VitalWatchError as exc:
        raise http_error(exc)
    return BatchIngestResponse(
        processed=batch.processed,
        failed=batch.failed,
        alerts_raised=batch.alerts_raised,
        errors=batch.errors,
    )


@router.get("/{patient_id}", response_model=list[ReadingResponse])
async def list_readings(
    patient_id: str,
    start: Optional[datetime] = Query(None, description="Earliest timestamp"),
    end: Optional[datetime] = Query(None, description="Latest timestamp"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    store: ReadingStore = Depends(get_reading_store),
):
    """List a patient's readings, newest first."""
    try:
        readings = await store.list_readings(
            patient_id, since=start, until=end, skip=skip, limit=limit
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return [ReadingResponse.model_validate(r) for r in readings]


@router.get("/{patient_id}/latest", response_model=ReadingResponse)
async def latest_reading(
    patient_id: str,
    store: ReadingStore = Depends(get_reading_store),
):
    try:
        reading = await store.latest_reading(patient_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    if reading is None:
        raise HTTPException(status_code=404, detail="No readings for patient")
    return ReadingResponse.model_validate(reading)


@router.get("/{patient_id}/summary", response_model=ReadingSummaryResponse)
async def reading_summary(
    patient_id: str,
    period: str = Query("24h", pattern="^(1h|6h|24h|7d|30d)$"),
    store: ReadingStore = Depends(get_reading_store),
):
    """Aggregate vitals over a recent period."""
    since = datetime.now(UTC) - SUMMARY_PERIODS[period]
    try:
        readings = await store.list_readings(patient_id, since=since, limit=10000)
    except VitalWatchError as exc:
        raise http_error(exc)
    return ReadingSummaryResponse(
        patient_id=patient_id, **summarize_readings(readings, period)
    )
