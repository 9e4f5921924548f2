"""SOS request CRUD. Dispatch and responses live in their own services."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmasos.core.errors import Forbidden, InvalidCoordinate, NotFound
from pharmasos.core.sos_policies import URGENCY_LEVELS
from pharmasos.models.pharmacy_response import PharmacyResponse
from pharmasos.models.sos_request import SosRequest
from pharmasos.services.geo_service import validate_coordinate


def create_sos_request(
    db: Session,
    patient_id: str,
    medicine_name: str,
    patient_name: str,
    contact_number: str,
    address: str,
    generic_name: str | None = None,
    quantity: int = 1,
    urgency_level: str = "HIGH",
    latitude: float | None = None,
    longitude: float | None = None,
    additional_notes: str | None = None,
    prescription_required: bool = False,
) -> SosRequest:
    """Store a new PENDING request. Coordinates are optional but come in pairs."""
    if (latitude is None) != (longitude is None):
        raise InvalidCoordinate("Latitude and longitude must be provided together")
    if latitude is not None:
        validate_coordinate(latitude, longitude)
    urgency_level = urgency_level.upper()
    if urgency_level not in URGENCY_LEVELS:
        raise ValueError(f"Urgency level must be one of {', '.join(URGENCY_LEVELS)}")
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")

    sos = SosRequest(
        patient_id=patient_id,
        medicine_name=medicine_name,
        generic_name=generic_name,
        quantity=quantity,
        urgency_level=urgency_level,
        patient_name=patient_name,
        contact_number=contact_number,
        address=address,
        latitude=latitude,
        longitude=longitude,
        additional_notes=additional_notes,
        prescription_required=prescription_required,
        status="PENDING",
    )
    db.add(sos)
    db.commit()
    db.refresh(sos)
    return sos


def get_sos(db: Session, sos_id: str) -> SosRequest:
    sos = db.get(SosRequest, sos_id)
    if not sos:
        raise NotFound("SOS request not found")
    return sos


def get_sos_for_patient(db: Session, sos_id: str, patient_id: str) -> SosRequest:
    """Get SOS by id. Only the patient who raised it can view it here."""
    sos = get_sos(db, sos_id)
    if sos.patient_id != patient_id:
        raise Forbidden("Only the patient who created this SOS can view it")
    return sos


def list_my_sos(db: Session, patient_id: str, limit: int = 20) -> list[SosRequest]:
    """Patient's SOS history, newest first."""
    result = db.execute(
        select(SosRequest)
        .where(SosRequest.patient_id == patient_id)
        .order_by(SosRequest.created_at.desc(), SosRequest.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def list_all_sos(
    db: Session,
    status: str | None = None,
    limit: int = 100,
    skip: int = 0,
) -> list[SosRequest]:
    """Admin view of every request, newest first."""
    stmt = select(SosRequest)
    if status:
        stmt = stmt.where(SosRequest.status == status.upper())
    stmt = stmt.order_by(SosRequest.created_at.desc(), SosRequest.id.desc()).offset(skip).limit(limit)
    return list(db.execute(stmt).scalars().all())


def list_responses(db: Session, sos_id: str) -> list[PharmacyResponse]:
    """Response timeline for one request, oldest first."""
    result = db.execute(
        select(PharmacyResponse)
        .where(PharmacyResponse.sos_id == sos_id)
        .order_by(PharmacyResponse.responded_at.asc(), PharmacyResponse.id.asc())
    )
    return list(result.scalars().all())
