"""Patient SOS API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from pharmasos.api.errors import to_http
from pharmasos.core.deps import require_patient
from pharmasos.core.errors import DispatchError
from pharmasos.db.session import get_db
from pharmasos.models.user import User
from pharmasos.schemas.sos import (
    PharmacyResponseOut,
    SosCreate,
    SosCreatedResponse,
    SosDetailResponse,
    SosDispatchRequest,
    SosDispatchResponse,
    SosRequestResponse,
)
from pharmasos.services.dispatch_service import DispatchCoordinator
from pharmasos.services.sos_service import (
    create_sos_request,
    get_sos_for_patient,
    list_my_sos,
    list_responses,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sos", tags=["sos"])


@router.post("", response_model=SosCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_sos(
    data: SosCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    """Submit an SOS and notify nearby pharmacies.

    The request is stored first. If dispatch fails the request still exists
    and the patient can retry with POST /sos/{id}/dispatch.
    """
    try:
        sos = create_sos_request(
            db,
            current_user.id,
            medicine_name=data.medicine_name,
            patient_name=data.patient_name,
            contact_number=data.contact_number,
            address=data.address,
            generic_name=data.generic_name,
            quantity=data.quantity,
            urgency_level=data.urgency_level,
            latitude=data.latitude,
            longitude=data.longitude,
            additional_notes=data.additional_notes,
            prescription_required=data.prescription_required,
        )
    except ValueError as e:
        raise to_http(e)

    sos_out = SosRequestResponse.model_validate(sos)
    try:
        notified = DispatchCoordinator(db).dispatch(sos, radius_km=data.radius_km)
    except DispatchError as e:
        logger.error("SOS %s stored but dispatch failed: %s", sos_out.id, e)
        return SosCreatedResponse(sos=sos_out, notified_count=None, dispatch_error=str(e))
    return SosCreatedResponse(sos=sos_out, notified_count=notified)


@router.get("/me", response_model=list[SosRequestResponse])
def list_my_requests(
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    """Current patient's SOS history, newest first."""
    return list_my_sos(db, current_user.id, limit)


@router.get("/{sos_id}", response_model=SosDetailResponse)
def get_request(
    sos_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    """SOS status plus pharmacy response timeline. Owner only."""
    try:
        sos = get_sos_for_patient(db, sos_id, current_user.id)
    except ValueError as e:
        raise to_http(e)
    detail = SosDetailResponse.model_validate(sos)
    detail.responses = [PharmacyResponseOut.model_validate(r) for r in list_responses(db, sos_id)]
    return detail


@router.post("/{sos_id}/dispatch", response_model=SosDispatchResponse)
def redispatch(
    sos_id: str,
    data: SosDispatchRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    """Run dispatch again; pharmacies already notified are skipped."""
    radius = data.radius_km if data else None
    try:
        sos = get_sos_for_patient(db, sos_id, current_user.id)
        notified = DispatchCoordinator(db).dispatch(sos, radius_km=radius)
    except ValueError as e:
        raise to_http(e)
    return SosDispatchResponse(sos_id=sos_id, notified_count=notified)
