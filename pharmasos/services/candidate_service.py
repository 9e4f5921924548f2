"""Candidate pharmacy lookup for SOS requests."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmasos.core.config import settings
from pharmasos.core.errors import InvalidCoordinate
from pharmasos.core.sos_policies import (
    ELIGIBLE_VERIFICATION_STATUSES,
    RESPONSE_REJECTED,
    SOS_PENDING,
)
from pharmasos.models.pharmacy import Pharmacy
from pharmasos.models.pharmacy_response import PharmacyResponse
from pharmasos.models.sos_request import SosRequest
from pharmasos.services.geo_service import distance_km, validate_coordinate

logger = logging.getLogger(__name__)


@dataclass
class CandidatePharmacy:
    """Pharmacy eligible to be notified about an SOS."""

    pharmacy_id: str
    user_id: str
    name: str
    distance_km: float | None  # None when the request has no coordinates


@dataclass
class NearbyRequest:
    """Pending SOS request as seen from a pharmacy."""

    sos: SosRequest
    distance_km: float


def rejected_pharmacy_ids(db: Session, sos_id: str) -> set[str]:
    """Pharmacies that declined this SOS; they are never re-notified for it."""
    result = db.execute(
        select(PharmacyResponse.pharmacy_id).where(
            PharmacyResponse.sos_id == sos_id,
            PharmacyResponse.response == RESPONSE_REJECTED,
        )
    )
    return set(result.scalars().all())


def find_candidates(
    db: Session,
    latitude: float | None,
    longitude: float | None,
    radius_km: float | None = None,
    excluded_pharmacy_ids: Iterable[str] = (),
) -> list[CandidatePharmacy]:
    """
    Verified pharmacies that should hear about an SOS.

    Without coordinates every eligible pharmacy is returned, unranked.
    With coordinates, pharmacies within radius_km (settings.sos_default_radius_km
    when not given) are returned nearest first; pharmacies with missing or
    broken coordinates are skipped.
    """
    if radius_km is None:
        radius_km = settings.sos_default_radius_km
    has_origin = latitude is not None and longitude is not None
    if has_origin:
        validate_coordinate(latitude, longitude)

    excluded = set(excluded_pharmacy_ids)
    result = db.execute(
        select(Pharmacy).where(Pharmacy.verification_status.in_(ELIGIBLE_VERIFICATION_STATUSES))
    )
    pharmacies = [p for p in result.scalars().all() if p.id not in excluded]

    if not has_origin:
        return [
            CandidatePharmacy(pharmacy_id=p.id, user_id=p.user_id, name=p.name, distance_km=None)
            for p in pharmacies
        ]

    candidates: list[CandidatePharmacy] = []
    for p in pharmacies:
        if p.latitude is None or p.longitude is None:
            continue
        try:
            dist = distance_km(latitude, longitude, p.latitude, p.longitude)
        except InvalidCoordinate:
            logger.warning("Skipping pharmacy %s with invalid coordinates", p.id)
            continue
        if dist <= radius_km:
            candidates.append(
                CandidatePharmacy(pharmacy_id=p.id, user_id=p.user_id, name=p.name, distance_km=dist)
            )

    candidates.sort(key=lambda c: c.distance_km)
    return candidates


def candidates_for_request(
    db: Session,
    sos: SosRequest,
    radius_km: float | None = None,
) -> list[CandidatePharmacy]:
    """find_candidates for a stored request, minus pharmacies that rejected it."""
    return find_candidates(
        db,
        sos.latitude,
        sos.longitude,
        radius_km=radius_km,
        excluded_pharmacy_ids=rejected_pharmacy_ids(db, sos.id),
    )


def find_nearby_requests(
    db: Session,
    pharmacy: Pharmacy,
    radius_km: float | None = None,
) -> list[NearbyRequest]:
    """Pending SOS requests around a pharmacy, nearest first.

    Polling fallback for pharmacies that missed a dispatch. Requests the
    pharmacy already rejected are left out.
    """
    if radius_km is None:
        radius_km = settings.pharmacy_nearby_radius_km
    if pharmacy.latitude is None or pharmacy.longitude is None:
        raise InvalidCoordinate("Pharmacy location is not set")
    validate_coordinate(pharmacy.latitude, pharmacy.longitude)

    declined = set(
        db.execute(
            select(PharmacyResponse.sos_id).where(
                PharmacyResponse.pharmacy_id == pharmacy.id,
                PharmacyResponse.response == RESPONSE_REJECTED,
            )
        ).scalars().all()
    )
    result = db.execute(
        select(SosRequest).where(
            SosRequest.status == SOS_PENDING,
            SosRequest.latitude.is_not(None),
            SosRequest.longitude.is_not(None),
        )
    )

    nearby: list[NearbyRequest] = []
    for sos in result.scalars().all():
        if sos.id in declined:
            continue
        try:
            dist = distance_km(pharmacy.latitude, pharmacy.longitude, sos.latitude, sos.longitude)
        except InvalidCoordinate:
            continue
        if dist <= radius_km:
            nearby.append(NearbyRequest(sos=sos, distance_km=dist))

    nearby.sort(key=lambda n: n.distance_km)
    return nearby
