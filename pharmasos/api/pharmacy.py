"""Pharmacy-side SOS API."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmasos.api.errors import to_http
from pharmasos.core.deps import require_pharmacy
from pharmasos.core.errors import Forbidden
from pharmasos.core.sos_policies import ELIGIBLE_VERIFICATION_STATUSES
from pharmasos.db.session import get_db
from pharmasos.models.pharmacy import Pharmacy
from pharmasos.schemas.sos import (
    NearbySosResponse,
    PharmacyResponseOut,
    PharmacyContact,
    SosRequestResponse,
    SosRespondRequest,
    SosRespondResponse,
)
from pharmasos.services.candidate_service import find_nearby_requests
from pharmasos.services.geo_service import format_distance
from pharmasos.services.response_service import ResponseResolver

router = APIRouter(prefix="/pharmacy/sos", tags=["pharmacy"])


@router.get("/nearby", response_model=list[NearbySosResponse])
def nearby_requests(
    radius_km: float | None = Query(default=None, gt=0, le=500),
    db: Session = Depends(get_db),
    pharmacy: Pharmacy = Depends(require_pharmacy),
):
    """Pending SOS requests around the caller's pharmacy, nearest first."""
    try:
        if pharmacy.verification_status not in ELIGIBLE_VERIFICATION_STATUSES:
            raise Forbidden("Only verified pharmacies can view SOS requests")
        nearby = find_nearby_requests(db, pharmacy, radius_km)
    except ValueError as e:
        raise to_http(e)
    return [
        NearbySosResponse(
            sos=SosRequestResponse.model_validate(n.sos),
            distance_km=round(n.distance_km, 2),
            distance_formatted=format_distance(n.distance_km),
        )
        for n in nearby
    ]


@router.post("/{sos_id}/respond", response_model=SosRespondResponse)
def respond(
    sos_id: str,
    data: SosRespondRequest,
    db: Session = Depends(get_db),
    pharmacy: Pharmacy = Depends(require_pharmacy),
):
    """Accept or reject an SOS. Losing an accept race returns 409."""
    try:
        result = ResponseResolver(db).respond(sos_id, pharmacy.id, data.response, data.note)
    except ValueError as e:
        raise to_http(e)
    return SosRespondResponse(
        decision=result.decision,
        sos=SosRequestResponse.model_validate(result.sos),
        response=PharmacyResponseOut.model_validate(result.response),
        pharmacy=PharmacyContact(**result.pharmacy_contact) if result.pharmacy_contact else None,
    )
