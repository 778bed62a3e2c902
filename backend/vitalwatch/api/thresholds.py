from fastapi import APIRouter, Depends, HTTPException

from vitalwatch.api.deps import get_threshold_store, http_error
from vitalwatch.errors import VitalWatchError
from vitalwatch.schemas.thresholds import (
    ContactResponse,
    ContactSettings,
    ThresholdResponse,
    ThresholdSettings,
)
from vitalwatch.services.monitoring.thresholds import merge_thresholds, ordering_problems
from vitalwatch.services.stores import PatientContact, ThresholdStore

router = APIRouter(prefix="/patients", tags=["Patient Settings"])


def _threshold_response(patient_id: str, overrides) -> ThresholdResponse:
    return ThresholdResponse(
        patient_id=patient_id,
        is_default=not overrides,
        overrides=overrides or {},
        effective=merge_thresholds(overrides).to_dict(),
    )


@router.get("/{patient_id}/thresholds", response_model=ThresholdResponse)
async def get_thresholds(
    patient_id: str,
    store: ThresholdStore = Depends(get_threshold_store),
):
    """Effective thresholds for a patient, with any overrides applied."""
    try:
        overrides = await store.get_thresholds(patient_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    return _threshold_response(patient_id, overrides)


@router.put("/{patient_id}/thresholds", response_model=ThresholdResponse)
async def update_thresholds(
    patient_id: str,
    settings_update: ThresholdSettings,
    store: ThresholdStore = Depends(get_threshold_store),
):
    """Replace a patient's threshold overrides.

    Omitted bands and bounds fall back to the defaults. The merged result
    must keep every band ordered.
    """
    overrides = settings_update.model_dump(exclude_none=True)
    problems = ordering_problems(merge_thresholds(overrides))
    if problems:
        raise HTTPException(status_code=422, detail="; ".join(problems))
    try:
        saved = await store.set_thresholds(patient_id, overrides)
    except VitalWatchError as exc:
        raise http_error(exc)
    return _threshold_response(patient_id, saved)


@router.get("/{patient_id}/contact", response_model=ContactResponse)
async def get_contact(
    patient_id: str,
    store: ThresholdStore = Depends(get_threshold_store),
):
    try:
        contact = await store.get_contact(patient_id)
    except VitalWatchError as exc:
        raise http_error(exc)
    if contact is None:
        return ContactResponse(patient_id=patient_id)
    return ContactResponse(
        patient_id=patient_id,
        email=contact.email,
        phone=contact.phone,
        push_token=contact.push_token,
        alert_methods=contact.alert_methods,
    )


@router.put("/{patient_id}/contact", response_model=ContactResponse)
async def update_contact(
    patient_id: str,
    contact: ContactSettings,
    store: ThresholdStore = Depends(get_threshold_store),
):
    """Set where and how a patient's alerts are delivered."""
    try:
        await store.set_contact(PatientContact(patient_id=patient_id, **contact.model_dump()))
    except VitalWatchError as exc:
        raise http_error(exc)
    return ContactResponse(patient_id=patient_id, **contact.model_dump())
