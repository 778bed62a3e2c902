from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from vitalwatch.api.deps import get_device_store, http_error
from vitalwatch.config import settings
from vitalwatch.errors import VitalWatchError
from vitalwatch.models import DeviceStatus
from vitalwatch.schemas.devices import (
    DeviceCreate,
    DeviceListResponse,
    DeviceResponse,
    DeviceStatsResponse,
    DeviceStatusUpdate,
    DeviceUpdate,
)
from vitalwatch.services.monitoring.devices import is_online, new_device_id
from vitalwatch.services.stores import DeviceStore

router = APIRouter(prefix="/devices", tags=["Devices"])

_STATUS_PATTERN = "^(online|offline|maintenance|error|retired)$"


def _offline_after() -> timedelta:
    return timedelta(seconds=settings.device_offline_after_seconds)


def _to_response(device: Any, now: datetime) -> DeviceResponse:
    response = DeviceResponse.model_validate(device)
    response.online = is_online(device, now, _offline_after())
    return response


@router.get("", response_model=DeviceListResponse)
async def list_devices(
    status: Optional[str] = Query(None, pattern=_STATUS_PATTERN),
    patient_id: Optional[str] = Query(None, description="Filter by patient ID"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    store: DeviceStore = Depends(get_device_store),
):
    """List registered devices, newest first."""
    try:
        devices = await store.list_devices(
            status=status, patient_id=patient_id, skip=skip, limit=limit
        )
        total = await store.count_devices(status=status, patient_id=patient_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    now = datetime.now(UTC)
    return DeviceListResponse(
        devices=[_to_response(d, now) for d in devices],
        pagination={"total": total, "limit": limit, "skip": skip},
    )


@router.get("/stats", response_model=DeviceStatsResponse)
async def device_stats(store: DeviceStore = Depends(get_device_store)):
    """Device counts per status, and how many reported recently."""
    seen_since = datetime.now(UTC) - _offline_after()
    try:
        counts = await store.status_counts()
        online = await store.count_devices(
            status=DeviceStatus.online, seen_since=seen_since
        )
    except VitalWatchError as exc:
        raise http_error(exc)
    return DeviceStatsResponse(
        status_counts=counts, total=sum(counts.values()), online=online
    )


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(
    device_id: str,
    store: DeviceStore = Depends(get_device_store),
):
    try:
        device = await store.get_device(device_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return _to_response(device, datetime.now(UTC))


@router.post("", response_model=DeviceResponse, status_code=201)
async def register_device(
    request: DeviceCreate,
    store: DeviceStore = Depends(get_device_store),
):
    """Register a device; the id is generated when not supplied."""
    now = datetime.now(UTC)
    values = request.model_dump()
    values["device_id"] = request.device_id or new_device_id(now)
    values["status"] = DeviceStatus.offline.value
    values["last_data"] = {}
    try:
        device = await store.register_device(values)
    except VitalWatchError as exc:
        raise http_error(exc)
    return _to_response(device, now)


@router.put("/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: str,
    request: DeviceUpdate,
    store: DeviceStore = Depends(get_device_store),
):
    patch = request.model_dump(exclude_unset=True)
    try:
        device = await store.update_device(device_id, patch)
    except VitalWatchError as exc:
        raise http_error(exc)
    return _to_response(device, datetime.now(UTC))


@router.put("/{device_id}/status", response_model=DeviceResponse)
async def set_device_status(
    device_id: str,
    request: DeviceStatusUpdate,
    store: DeviceStore = Depends(get_device_store),
):
    """Set the status by hand, e.g. to take a device into maintenance."""
    try:
        device = await store.update_device(device_id, {"status": request.status})
    except VitalWatchError as exc:
        raise http_error(exc)
    return _to_response(device, datetime.now(UTC))


@router.delete("/{device_id}", status_code=204)
async def delete_device(
    device_id: str,
    store: DeviceStore = Depends(get_device_store),
):
    try:
        await store.delete_device(device_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    return Response(status_code=204)
