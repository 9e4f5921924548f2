"""Accept/reject resolution tests."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from pharmasos.core.errors import AlreadyClaimed, Forbidden, InvalidDecision, NotFound
from pharmasos.models.notification import Notification
from pharmasos.models.pharmacy_response import PharmacyResponse
from pharmasos.models.sos_request import SosRequest
from pharmasos.services.dispatch_service import DispatchCoordinator
from pharmasos.services.notifier import DatabaseNotifier
from pharmasos.services.response_service import ResponseResolver, claim_request
from tests.conftest import make_pharmacy, make_sos, make_user, offset_north

LAT, LON = 27.7172, 85.3240


def _events(db, sos_id, event):
    rows = db.execute(select(Notification)).scalars().all()
    return [r for r in rows if (r.meta or {}).get("sosId") == sos_id and r.meta.get("event") == event]


def _responses(db, sos_id):
    return db.execute(select(PharmacyResponse).where(PharmacyResponse.sos_id == sos_id)).scalars().all()


def _patient_inbox(db, patient):
    return db.execute(select(Notification).where(Notification.user_id == patient.id)).scalars().all()


class BrokenAcceptNotifier(DatabaseNotifier):
    def sos_accepted(self, db, sos, pharmacy):
        raise RuntimeError("smtp gone")


def test_accept_claims_request(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Himal", offset_north(LAT, 2), LON)
    sos = make_sos(db, patient, LAT, LON)

    result = ResponseResolver(db).respond(sos.id, pharmacy.id, "accepted", note="Ready at counter")

    assert result.decision == "accepted"
    assert result.sos.status == "ACCEPTED"
    assert result.sos.accepted_by_pharmacy_id == pharmacy.id
    assert result.sos.accepted_at is not None
    assert result.response.response == "accepted"
    assert result.response.note == "Ready at counter"
    assert result.pharmacy_contact["name"] == "Himal"
    assert result.pharmacy_contact["phone"] == pharmacy.phone
    assert result.pharmacy_contact["distance_km"] == pytest.approx(2.0, abs=0.01)

    notices = _events(db, sos.id, "sos.accepted")
    assert len(notices) == 1
    assert notices[0].user_id == patient.id
    assert notices[0].priority == "high"
    assert notices[0].title == "Himal Accepted Your SOS Request"


def test_second_accept_is_already_claimed(db):
    patient = make_user(db, "Sita")
    first = make_pharmacy(db, "First", LAT, LON)
    second = make_pharmacy(db, "Second", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)

    resolver.respond(sos.id, first.id, "accepted")
    with pytest.raises(AlreadyClaimed) as exc:
        resolver.respond(sos.id, second.id, "accepted")

    assert "already fulfilled" in str(exc.value)
    db.expire_all()
    assert db.get(SosRequest, sos.id).accepted_by_pharmacy_id == first.id
    accepted = [r for r in _responses(db, sos.id) if r.response == "accepted"]
    assert [r.pharmacy_id for r in accepted] == [first.id]


def test_same_pharmacy_cannot_accept_twice(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Eager", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)

    resolver.respond(sos.id, pharmacy.id, "accepted")
    with pytest.raises(AlreadyClaimed):
        resolver.respond(sos.id, pharmacy.id, "accepted")


def test_reject_keeps_request_pending(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Out Of Stock", LAT, LON)
    sos = make_sos(db, patient, LAT, LON, medicine="Ventolin")

    result = ResponseResolver(db).respond(sos.id, pharmacy.id, "rejected", note="None left")

    assert result.decision == "rejected"
    assert result.pharmacy_contact is None
    assert result.sos.status == "PENDING"
    assert result.sos.accepted_by_pharmacy_id is None

    notices = _events(db, sos.id, "sos.declined")
    assert len(notices) == 1
    assert notices[0].user_id == patient.id
    assert notices[0].priority == "normal"
    assert notices[0].title == "Out Of Stock Declined Your SOS Request"


def test_duplicate_reject_is_idempotent(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Twice", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)

    first = resolver.respond(sos.id, pharmacy.id, "rejected")
    second = resolver.respond(sos.id, pharmacy.id, "rejected")

    assert first.response.id == second.response.id
    assert len(_responses(db, sos.id)) == 1
    assert len(_events(db, sos.id, "sos.declined")) == 1


def test_reject_then_accept_by_same_pharmacy(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Restocked", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)

    resolver.respond(sos.id, pharmacy.id, "rejected")
    result = resolver.respond(sos.id, pharmacy.id, "accepted")

    assert result.sos.status == "ACCEPTED"
    assert sorted(r.response for r in _responses(db, sos.id)) == ["accepted", "rejected"]


def test_decision_is_case_insensitive(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Caps", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)

    assert ResponseResolver(db).respond(sos.id, pharmacy.id, " Accepted ").decision == "accepted"


@pytest.mark.parametrize("decision", ["maybe", "", "accept", None])
def test_invalid_decision(db, decision):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Unsure", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)

    with pytest.raises(InvalidDecision):
        ResponseResolver(db).respond(sos.id, pharmacy.id, decision)
    db.refresh(sos)
    assert sos.status == "PENDING"
    assert _responses(db, sos.id) == []


@pytest.mark.parametrize("status", ["PENDING", "REJECTED", "SUSPENDED"])
def test_unverified_pharmacy_is_forbidden(db, status):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Shady", LAT, LON, status=status)
    sos = make_sos(db, patient, LAT, LON)

    with pytest.raises(Forbidden):
        ResponseResolver(db).respond(sos.id, pharmacy.id, "accepted")


def test_approved_pharmacy_may_respond(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Approved", LAT, LON, status="APPROVED")
    sos = make_sos(db, patient, LAT, LON)

    assert ResponseResolver(db).respond(sos.id, pharmacy.id, "accepted").sos.status == "ACCEPTED"


def test_unknown_ids_are_not_found(db):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Real", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)

    with pytest.raises(NotFound):
        resolver.respond("missing-sos", pharmacy.id, "accepted")
    with pytest.raises(NotFound):
        resolver.respond(sos.id, "missing-pharmacy", "accepted")


def test_acceptance_closes_out_other_pharmacies(db):
    patient = make_user(db, "Sita")
    winner = make_pharmacy(db, "Winner", offset_north(LAT, 1), LON)
    loser_a = make_pharmacy(db, "Loser A", offset_north(LAT, 5), LON)
    loser_b = make_pharmacy(db, "Loser B", offset_north(LAT, 9), LON)
    sos = make_sos(db, patient, LAT, LON)
    assert DispatchCoordinator(db).dispatch(sos) == 3

    ResponseResolver(db).respond(sos.id, winner.id, "accepted")

    db.expire_all()
    dispatched = {r.user_id: r for r in _events(db, sos.id, "sos.dispatched")}
    assert dispatched[loser_a.user_id].is_read is True
    assert dispatched[loser_b.user_id].is_read is True
    assert dispatched[winner.user_id].is_read is False

    claimed = _events(db, sos.id, "sos.claimed_by_other")
    assert sorted(r.user_id for r in claimed) == sorted([loser_a.user_id, loser_b.user_id])
    assert all(r.title == "SOS Request Already Fulfilled" for r in claimed)


def test_notification_failure_does_not_undo_acceptance(db, caplog):
    patient = make_user(db, "Sita")
    pharmacy = make_pharmacy(db, "Stoic", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)

    result = ResponseResolver(db, notifier=BrokenAcceptNotifier()).respond(sos.id, pharmacy.id, "accepted")

    assert result.sos.status == "ACCEPTED"
    assert "response stands" in caplog.text
    db.expire_all()
    assert db.get(SosRequest, sos.id).accepted_by_pharmacy_id == pharmacy.id
    assert _events(db, sos.id, "sos.accepted") == []


def test_reject_after_acceptance_is_recorded_without_patient_notice(db):
    patient = make_user(db, "Sita")
    winner = make_pharmacy(db, "Winner", LAT, LON)
    late = make_pharmacy(db, "Late", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)
    resolver.respond(sos.id, winner.id, "accepted")

    result = resolver.respond(sos.id, late.id, "rejected")

    assert result.sos.status == "ACCEPTED"
    assert result.sos.accepted_by_pharmacy_id == winner.id
    assert len(_responses(db, sos.id)) == 2
    assert _events(db, sos.id, "sos.declined") == []
    assert [n.title for n in _patient_inbox(db, patient)] == ["Winner Accepted Your SOS Request"]


def test_winner_cannot_reject_after_accepting(db):
    patient = make_user(db, "Sita")
    winner = make_pharmacy(db, "Winner", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    resolver = ResponseResolver(db)
    resolver.respond(sos.id, winner.id, "accepted")

    with pytest.raises(Forbidden):
        resolver.respond(sos.id, winner.id, "rejected")

    db.expire_all()
    assert db.get(SosRequest, sos.id).accepted_by_pharmacy_id == winner.id
    assert [r.response for r in _responses(db, sos.id)] == ["accepted"]
    assert [n.meta["event"] for n in _patient_inbox(db, patient)] == ["sos.accepted"]


def test_claim_request_compare_and_swap(db):
    patient = make_user(db, "Sita")
    a = make_pharmacy(db, "A", LAT, LON)
    b = make_pharmacy(db, "B", LAT, LON)
    sos = make_sos(db, patient, LAT, LON)
    now = datetime.now(timezone.utc)

    assert claim_request(db, sos.id, a.id, now) is True
    assert claim_request(db, sos.id, b.id, now) is False
    db.commit()

    db.expire_all()
    assert db.get(SosRequest, sos.id).accepted_by_pharmacy_id == a.id
