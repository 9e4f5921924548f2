"""Pharmacy responses to SOS requests.

Exactly one pharmacy can accept a request. The accept transition is a
conditional UPDATE guarded by status = PENDING; the database decides the
winner, so this works across workers and processes. Everybody else gets
AlreadyClaimed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmasos.core.errors import AlreadyClaimed, Forbidden, InvalidDecision, NotFound
from pharmasos.core.sos_policies import (
    DECISIONS,
    ELIGIBLE_VERIFICATION_STATUSES,
    EVENT_DISPATCHED,
    RESPONSE_ACCEPTED,
    RESPONSE_REJECTED,
    SOS_ACCEPTED,
    SOS_PENDING,
)
from pharmasos.models.pharmacy import Pharmacy
from pharmasos.models.pharmacy_response import PharmacyResponse
from pharmasos.models.sos_request import SosRequest
from pharmasos.services.geo_service import distance_km
from pharmasos.services.notification_service import user_ids_with_event
from pharmasos.services.notifier import DatabaseNotifier, SosNotifier


@dataclass
class RespondResult:
    """Outcome of a pharmacy response."""

    sos: SosRequest
    response: PharmacyResponse
    decision: str
    pharmacy_contact: dict[str, Any] | None  # only on acceptance


def claim_request(db: Session, sos_id: str, pharmacy_id: str, accepted_at: datetime) -> bool:
    """Compare-and-swap PENDING -> ACCEPTED. True if this caller won.

    Does not commit.
    """
    result = db.execute(
        update(SosRequest)
        .where(
            SosRequest.id == sos_id,
            SosRequest.status == SOS_PENDING,
            SosRequest.accepted_by_pharmacy_id.is_(None),
        )
        .values(
            status=SOS_ACCEPTED,
            accepted_by_pharmacy_id=pharmacy_id,
            accepted_at=accepted_at,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def pharmacy_contact(pharmacy: Pharmacy, sos: SosRequest) -> dict[str, Any]:
    contact = {
        "pharmacy_id": pharmacy.id,
        "name": pharmacy.name,
        "phone": pharmacy.phone,
        "address": pharmacy.address,
        "latitude": pharmacy.latitude,
        "longitude": pharmacy.longitude,
        "distance_km": None,
    }
    if sos.has_coordinates and pharmacy.latitude is not None and pharmacy.longitude is not None:
        contact["distance_km"] = round(
            distance_km(sos.latitude, sos.longitude, pharmacy.latitude, pharmacy.longitude), 2
        )
    return contact


class ResponseResolver:
    """Records accept/reject decisions and fires the matching notifications.

    Notifications are best effort: a failure is logged and never undoes or
    fails the response itself.
    """

    def __init__(
        self,
        db: Session,
        notifier: SosNotifier | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier or DatabaseNotifier()
        self.logger = logger or logging.getLogger(__name__)

    def respond(
        self,
        sos_id: str,
        pharmacy_id: str,
        decision: str,
        note: str | None = None,
    ) -> RespondResult:
        decision = (decision or "").strip().lower()
        if decision not in DECISIONS:
            raise InvalidDecision("Response must be 'accepted' or 'rejected'")

        pharmacy = self.db.get(Pharmacy, pharmacy_id)
        if not pharmacy:
            raise NotFound("Pharmacy not found")
        if pharmacy.verification_status not in ELIGIBLE_VERIFICATION_STATUSES:
            raise Forbidden("Only verified pharmacies can respond to SOS requests")

        sos = self.db.get(SosRequest, sos_id)
        if not sos:
            raise NotFound("SOS request not found")

        if decision == RESPONSE_ACCEPTED:
            return self._accept(sos, pharmacy, note)
        return self._reject(sos, pharmacy, note)

    # ---------- accept ----------

    def _accept(self, sos: SosRequest, pharmacy: Pharmacy, note: str | None) -> RespondResult:
        sos_id, pharmacy_id = sos.id, pharmacy.id
        if sos.status == SOS_ACCEPTED:
            raise AlreadyClaimed(sos_id)

        now = datetime.now(timezone.utc)
        if not claim_request(self.db, sos_id, pharmacy_id, now):
            self.db.rollback()
            self.logger.info("Pharmacy %s lost the race for SOS %s", pharmacy_id, sos_id)
            raise AlreadyClaimed(sos_id)

        response = PharmacyResponse(
            sos_id=sos_id,
            pharmacy_id=pharmacy_id,
            response=RESPONSE_ACCEPTED,
            note=note,
        )
        self.db.add(response)
        self.db.commit()
        self.db.refresh(sos)
        self.db.refresh(response)
        self.logger.info("SOS %s accepted by pharmacy %s", sos.id, pharmacy.id)

        self._best_effort("patient acceptance notice", self.notifier.sos_accepted, self.db, sos, pharmacy)
        self._best_effort("claimed-by-other cleanup", self._close_out_others, sos, pharmacy)

        return RespondResult(
            sos=sos,
            response=response,
            decision=RESPONSE_ACCEPTED,
            pharmacy_contact=pharmacy_contact(pharmacy, sos),
        )

    def _close_out_others(self, sos: SosRequest, winner: Pharmacy) -> None:
        """Tell every other notified pharmacy the request is gone."""
        others = sorted(user_ids_with_event(self.db, sos.id, EVENT_DISPATCHED) - {winner.user_id})
        if not others:
            return
        retired = self.notifier.retire_dispatch(self.db, sos, others)
        told = self.notifier.sos_claimed_by_other(self.db, sos, others)
        self.logger.info(
            "SOS %s closed out for %s pharmacies (%s prompts retired)", sos.id, told, retired
        )

    # ---------- reject ----------

    def _existing_rejection(self, sos_id: str, pharmacy_id: str) -> PharmacyResponse | None:
        return self.db.execute(
            select(PharmacyResponse).where(
                PharmacyResponse.sos_id == sos_id,
                PharmacyResponse.pharmacy_id == pharmacy_id,
                PharmacyResponse.response == RESPONSE_REJECTED,
            )
        ).scalar_one_or_none()

    def _reject(self, sos: SosRequest, pharmacy: Pharmacy, note: str | None) -> RespondResult:
        if sos.accepted_by_pharmacy_id == pharmacy.id:
            raise Forbidden("This pharmacy already accepted this SOS request and cannot reject it")

        existing = self._existing_rejection(sos.id, pharmacy.id)
        if existing:
            self.logger.info("Pharmacy %s already rejected SOS %s", pharmacy.id, sos.id)
            return RespondResult(sos=sos, response=existing, decision=RESPONSE_REJECTED, pharmacy_contact=None)

        response = PharmacyResponse(
            sos_id=sos.id,
            pharmacy_id=pharmacy.id,
            response=RESPONSE_REJECTED,
            note=note,
        )
        self.db.add(response)
        try:
            self.db.commit()
        except IntegrityError:
            # concurrent duplicate from the same pharmacy
            self.db.rollback()
            existing = self._existing_rejection(sos.id, pharmacy.id)
            if existing is None:
                raise
            return RespondResult(sos=sos, response=existing, decision=RESPONSE_REJECTED, pharmacy_contact=None)

        self.db.refresh(response)
        self.logger.info("SOS %s rejected by pharmacy %s", sos.id, pharmacy.id)

        # the patient only hears about declines while the request is still open
        if sos.status == SOS_PENDING:
            self._best_effort("patient decline notice", self.notifier.sos_declined, self.db, sos, pharmacy)

        return RespondResult(sos=sos, response=response, decision=RESPONSE_REJECTED, pharmacy_contact=None)

    def _best_effort(self, label: str, fn, *args) -> None:
        try:
            fn(*args)
        except Exception:
            self.db.rollback()
            self.logger.exception("SOS %s failed; response stands", label)
