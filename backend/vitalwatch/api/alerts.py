from datetime import UTC, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from vitalwatch.api.deps import get_alert_manager, get_alert_store, http_error
from vitalwatch.errors import VitalWatchError
from vitalwatch.models import AlertSeverity, AlertStatus
from vitalwatch.schemas.alerts import (
    AcknowledgeRequest,
    AlertResponse,
    AlertStatistics,
    EmergencyRequest,
    EscalateRequest,
    ResolveRequest,
)
from vitalwatch.services.monitoring.alerts import AlertManager
from vitalwatch.services.monitoring.analytics import alert_statistics
from vitalwatch.services.stores import AlertStore

router = APIRouter(prefix="/alerts", tags=["Alerts"])

_STATUS_PATTERN = "^(active|acknowledged|resolved|escalated)$"
_SEVERITY_PATTERN = "^(info|warning|critical|emergency)$"


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    patient_id: Optional[str] = Query(None, description="Filter by patient ID"),
    status: Optional[str] = Query(None, pattern=_STATUS_PATTERN),
    severity: Optional[str] = Query(None, pattern=_SEVERITY_PATTERN),
    alert_type: Optional[str] = Query(None, alias="type"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    store: AlertStore = Depends(get_alert_store),
):
    """List alerts with optional filtering, newest first."""
    try:
        alerts = await store.list_alerts(
            patient_id=patient_id,
            status=status,
            severity=severity,
            alert_type=alert_type,
            skip=skip,
            limit=limit,
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.get("/active", response_model=list[AlertResponse])
async def active_critical_alerts(
    patient_id: Optional[str] = Query(None),
    store: AlertStore = Depends(get_alert_store),
):
    """Active alerts at critical or emergency severity."""
    try:
        alerts = await store.list_alerts(
            patient_id=patient_id,
            status=AlertStatus.active,
            severity=[AlertSeverity.critical, AlertSeverity.emergency],
            limit=1000,
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.get("/statistics", response_model=AlertStatistics)
async def get_alert_statistics(
    patient_id: Optional[str] = Query(None),
    days: int = Query(7, ge=1, le=365),
    store: AlertStore = Depends(get_alert_store),
):
    since = datetime.now(UTC) - timedelta(days=days)
    try:
        alerts = await store.list_alerts(patient_id=patient_id, since=since, limit=100000)
    except VitalWatchError as exc:
        raise http_error(exc)
    return AlertStatistics(**alert_statistics(alerts, period_days=days))


@router.post("/emergency", response_model=AlertResponse, status_code=201)
async def raise_emergency(
    request: EmergencyRequest,
    manager: AlertManager = Depends(get_alert_manager),
):
    """Raise a manual emergency alert (panic button)."""
    try:
        result = await manager.raise_emergency(
            request.patient_id,
            request.device_id,
            message=request.message,
            location=request.location,
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return AlertResponse.model_validate(result.alert)


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: str,
    store: AlertStore = Depends(get_alert_store),
):
    try:
        alert = await store.get_alert(alert_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return AlertResponse.model_validate(alert)


@router.put("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str,
    request: AcknowledgeRequest,
    manager: AlertManager = Depends(get_alert_manager),
):
    try:
        alert = await manager.acknowledge(alert_id, request.user_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    return AlertResponse.model_validate(alert)


@router.put("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: str,
    request: ResolveRequest,
    manager: AlertManager = Depends(get_alert_manager),
):
    try:
        alert = await manager.resolve(
            alert_id, request.user_id, method=request.method, notes=request.notes
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return AlertResponse.model_validate(alert)


@router.put("/{alert_id}/escalate", response_model=AlertResponse)
async def escalate_alert(
    alert_id: str,
    request: EscalateRequest,
    manager: AlertManager = Depends(get_alert_manager),
):
    try:
        alert = await manager.escalate(
            alert_id,
            level=request.level,
            escalated_to=request.escalated_to,
            reason=request.reason,
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return AlertResponse.model_validate(alert)
