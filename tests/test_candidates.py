"""Candidate pharmacy lookup tests."""

import pytest

from pharmasos.core.config import settings
from pharmasos.core.errors import InvalidCoordinate
from pharmasos.models.pharmacy_response import PharmacyResponse
from pharmasos.services.candidate_service import (
    candidates_for_request,
    find_candidates,
    find_nearby_requests,
)
from tests.conftest import make_pharmacy, make_sos, make_user, offset_north

ORIGIN = (0.0, 0.0)


def test_radius_filter_is_exact_and_ordered(db):
    """Pharmacies at 2, 10, 49.9 and 50.1 km: radius 50 keeps the first three, nearest first."""
    p50_1 = make_pharmacy(db, "P50.1", offset_north(0.0, 50.1), 0.0)
    p10 = make_pharmacy(db, "P10", offset_north(0.0, 10), 0.0)
    p49_9 = make_pharmacy(db, "P49.9", offset_north(0.0, 49.9), 0.0)
    p2 = make_pharmacy(db, "P2", offset_north(0.0, 2), 0.0)

    result = find_candidates(db, *ORIGIN, radius_km=50)

    assert [c.pharmacy_id for c in result] == [p2.id, p10.id, p49_9.id]
    assert p50_1.id not in {c.pharmacy_id for c in result}
    assert [round(c.distance_km, 1) for c in result] == [2.0, 10.0, 49.9]
    assert result[0].user_id == p2.user_id


def test_default_radius_is_50_km(db):
    make_pharmacy(db, "Inside", offset_north(0.0, 45), 0.0)
    make_pharmacy(db, "Outside", offset_north(0.0, 55), 0.0)

    names = [c.name for c in find_candidates(db, *ORIGIN)]
    assert names == ["Inside"]


def test_default_radius_follows_settings(db, monkeypatch):
    make_pharmacy(db, "Inside", offset_north(0.0, 45), 0.0)
    make_pharmacy(db, "Outside", offset_north(0.0, 55), 0.0)
    monkeypatch.setattr(settings, "sos_default_radius_km", 60.0)

    assert [c.name for c in find_candidates(db, *ORIGIN)] == ["Inside", "Outside"]


def test_only_verified_or_approved_pharmacies(db):
    make_pharmacy(db, "Verified", 0.01, 0.0, status="VERIFIED")
    make_pharmacy(db, "Approved", 0.02, 0.0, status="APPROVED")
    make_pharmacy(db, "Pending", 0.01, 0.0, status="PENDING")
    make_pharmacy(db, "Rejected", 0.01, 0.0, status="REJECTED")

    names = {c.name for c in find_candidates(db, *ORIGIN, radius_km=50)}
    assert names == {"Verified", "Approved"}


def test_missing_coordinates_skipped_when_radius_applies(db):
    make_pharmacy(db, "Located", 0.01, 0.0)
    make_pharmacy(db, "Nowhere", None, None)
    make_pharmacy(db, "Half", 0.01, None)

    names = [c.name for c in find_candidates(db, *ORIGIN)]
    assert names == ["Located"]


def test_broken_pharmacy_row_does_not_fail_lookup(db):
    make_pharmacy(db, "Good", 0.01, 0.0)
    make_pharmacy(db, "Bad", 123.0, 0.0)  # latitude out of range

    names = [c.name for c in find_candidates(db, *ORIGIN)]
    assert names == ["Good"]


def test_no_request_coordinates_returns_all_eligible(db):
    make_pharmacy(db, "Here", 0.01, 0.0)
    make_pharmacy(db, "Very far", 60.0, 60.0)
    make_pharmacy(db, "Unknown", None, None)
    make_pharmacy(db, "Unverified", 0.01, 0.0, status="PENDING")

    result = find_candidates(db, None, None)

    assert {c.name for c in result} == {"Here", "Very far", "Unknown"}
    assert all(c.distance_km is None for c in result)


def test_invalid_request_coordinates_raise(db):
    with pytest.raises(InvalidCoordinate):
        find_candidates(db, 95.0, 0.0)


def test_excluded_ids_are_dropped(db):
    a = make_pharmacy(db, "A", 0.01, 0.0)
    b = make_pharmacy(db, "B", 0.02, 0.0)

    result = find_candidates(db, *ORIGIN, excluded_pharmacy_ids=[a.id])
    assert [c.pharmacy_id for c in result] == [b.id]


def test_rejecting_pharmacy_never_candidate_again(db):
    """After P rejects S it is gone from S's candidates while staying verified and in range."""
    patient = make_user(db, "Sita")
    p = make_pharmacy(db, "Decliner", 0.01, 0.0)
    q = make_pharmacy(db, "Other", 0.02, 0.0)
    sos = make_sos(db, patient, *ORIGIN)
    other_sos = make_sos(db, patient, *ORIGIN)

    db.add(PharmacyResponse(sos_id=sos.id, pharmacy_id=p.id, response="rejected"))
    db.commit()

    assert [c.pharmacy_id for c in candidates_for_request(db, sos)] == [q.id]
    # other requests are unaffected
    assert [c.pharmacy_id for c in candidates_for_request(db, other_sos)] == [p.id, q.id]
    assert p.verification_status == "VERIFIED"


def test_nearby_requests_for_pharmacy(db):
    patient = make_user(db, "Ram")
    pharmacy = make_pharmacy(db, "Poller", 27.70, 85.30)
    near = make_sos(db, patient, offset_north(27.70, 2), 85.30)
    nearer = make_sos(db, patient, offset_north(27.70, 0.5), 85.30)
    make_sos(db, patient, offset_north(27.70, 25), 85.30)  # outside 10 km
    make_sos(db, patient, None, None)  # no location
    declined = make_sos(db, patient, offset_north(27.70, 1), 85.30)
    taken = make_sos(db, patient, offset_north(27.70, 1), 85.30)
    taken.status = "ACCEPTED"
    db.add(PharmacyResponse(sos_id=declined.id, pharmacy_id=pharmacy.id, response="rejected"))
    db.commit()

    nearby = find_nearby_requests(db, pharmacy)

    assert [n.sos.id for n in nearby] == [nearer.id, near.id]
    assert nearby[0].distance_km == pytest.approx(0.5, abs=0.01)


def test_nearby_requests_need_pharmacy_location(db):
    pharmacy = make_pharmacy(db, "No address", None, None)
    with pytest.raises(InvalidCoordinate):
        find_nearby_requests(db, pharmacy)


def test_nearby_radius_follows_settings(db, monkeypatch):
    patient = make_user(db, "Ram")
    pharmacy = make_pharmacy(db, "Poller", 27.70, 85.30)
    make_sos(db, patient, offset_north(27.70, 2), 85.30)
    make_sos(db, patient, offset_north(27.70, 25), 85.30)

    assert len(find_nearby_requests(db, pharmacy)) == 1
    monkeypatch.setattr(settings, "pharmacy_nearby_radius_km", 30.0)
    assert len(find_nearby_requests(db, pharmacy)) == 2
