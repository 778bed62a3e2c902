from fastapi import APIRouter, Depends, Query

from vitalwatch.api.deps import (
    get_alert_store,
    get_monitoring_service,
    get_reading_store,
    http_error,
)
from vitalwatch.config import settings
from vitalwatch.errors import VitalWatchError
from vitalwatch.models import AlertType
from vitalwatch.schemas.alerts import AlertResponse
from vitalwatch.schemas.predictions import (
    AnomalyResponse,
    AnomalyResponseItem,
    RiskPredictionResponse,
    RiskRequest,
    RiskResponse,
)
from vitalwatch.services.monitoring.analytics import detect_anomalies
from vitalwatch.services.monitoring.pipeline import MonitoringService
from vitalwatch.services.stores import AlertStore, ReadingStore

router = APIRouter(prefix="/predictions", tags=["Predictions"])


@router.post("/risk", response_model=RiskResponse)
async def predict_risk(
    request: RiskRequest,
    service: MonitoringService = Depends(get_monitoring_service),
):
    """Score a patient's recent readings; high or critical risk raises an alert."""
    try:
        prediction, alert = await service.predict_risk(
            request.patient_id,
            window=request.window,
            device_id=request.device_id,
            raise_alert=request.raise_alert,
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return RiskResponse(
        prediction=RiskPredictionResponse.model_validate(prediction),
        alert=AlertResponse.model_validate(alert) if alert is not None else None,
    )


@router.get("/{patient_id}/history", response_model=list[AlertResponse])
async def prediction_history(
    patient_id: str,
    limit: int = Query(20, ge=1, le=200),
    store: AlertStore = Depends(get_alert_store),
):
    """Prediction alerts previously raised for a patient."""
    try:
        alerts = await store.list_alerts(
            patient_id=patient_id, alert_type=AlertType.prediction, limit=limit
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.get("/anomaly/{patient_id}", response_model=AnomalyResponse)
async def anomalies(
    patient_id: str,
    z_threshold: float = Query(None, gt=0, description="Z-score cut-off"),
    store: ReadingStore = Depends(get_reading_store),
):
    """Readings that deviate strongly from the patient's recent mean."""
    try:
        readings = await store.list_readings(
            patient_id, limit=settings.anomaly_window_size
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    report = detect_anomalies(readings, z_threshold or settings.anomaly_z_threshold)
    return AnomalyResponse(
        patient_id=patient_id,
        analyzed_readings=report.analyzed_readings,
        message=None if report.sufficient_data else "Insufficient data for anomaly detection",
        anomalies=[AnomalyResponseItem.model_validate(item) for item in report.anomalies],
        statistics=report.statistics,
    )
