"""Notification strategies for the SOS lifecycle.

Dispatch and response resolution only talk to a SosNotifier. The default
writes inbox rows; NullNotifier drops everything.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from sqlalchemy.orm import Session

from pharmasos.core.sos_policies import (
    EVENT_ACCEPTED,
    EVENT_CLAIMED,
    EVENT_DECLINED,
    EVENT_DISPATCHED,
    PATIENT_SOS_LINK,
    PHARMACY_SOS_LINK,
)
from pharmasos.models.pharmacy import Pharmacy
from pharmasos.models.sos_request import SosRequest
from pharmasos.services import notification_service


class SosNotifier(ABC):
    """Methods may raise; callers decide whether that matters."""

    @abstractmethod
    def sos_dispatched(self, db: Session, sos: SosRequest, user_ids: list[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    def sos_accepted(self, db: Session, sos: SosRequest, pharmacy: Pharmacy) -> None:
        raise NotImplementedError

    @abstractmethod
    def sos_declined(self, db: Session, sos: SosRequest, pharmacy: Pharmacy) -> None:
        raise NotImplementedError

    @abstractmethod
    def sos_claimed_by_other(self, db: Session, sos: SosRequest, user_ids: Iterable[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    def retire_dispatch(self, db: Session, sos: SosRequest, user_ids: Iterable[str]) -> int:
        raise NotImplementedError


class NullNotifier(SosNotifier):
    """Creates nothing."""

    def sos_dispatched(self, db, sos, user_ids):
        return 0

    def sos_accepted(self, db, sos, pharmacy):
        return None

    def sos_declined(self, db, sos, pharmacy):
        return None

    def sos_claimed_by_other(self, db, sos, user_ids):
        return 0

    def retire_dispatch(self, db, sos, user_ids):
        return 0


class DatabaseNotifier(SosNotifier):
    """Writes SOS_UPDATE rows into the notification store."""

    def sos_dispatched(self, db: Session, sos: SosRequest, user_ids: list[str]) -> int:
        quantity = f"{sos.quantity} x " if sos.quantity and sos.quantity > 1 else ""
        return notification_service.broadcast_notification(
            db,
            user_ids,
            f"Emergency SOS: {sos.medicine_name}",
            f"{sos.patient_name} urgently needs {quantity}{sos.medicine_name} near {sos.address}. "
            "Respond now if you have it in stock.",
            "SOS_UPDATE",
            metadata={
                "event": EVENT_DISPATCHED,
                "sosId": sos.id,
                "medicineName": sos.medicine_name,
                "patientName": sos.patient_name,
                "address": sos.address,
                "urgencyLevel": sos.urgency_level,
                "link": PHARMACY_SOS_LINK.format(sos_id=sos.id),
            },
            target_role="PHARMACY",
            priority="high",
        )

    def sos_accepted(self, db: Session, sos: SosRequest, pharmacy: Pharmacy) -> None:
        notification_service.create_notification(
            db,
            sos.patient_id,
            f"{pharmacy.name} Accepted Your SOS Request",
            f"Great news! {pharmacy.name} has confirmed they have {sos.medicine_name} in stock "
            "and will prepare it for you. Click to view details.",
            "SOS_UPDATE",
            metadata={
                "event": EVENT_ACCEPTED,
                "status": "accepted",
                "sosId": sos.id,
                "pharmacyId": pharmacy.id,
                "pharmacyName": pharmacy.name,
                "medicineName": sos.medicine_name,
                "link": PATIENT_SOS_LINK.format(sos_id=sos.id),
            },
            target_role="PATIENT",
            priority="high",
        )

    def sos_declined(self, db: Session, sos: SosRequest, pharmacy: Pharmacy) -> None:
        notification_service.create_notification(
            db,
            sos.patient_id,
            f"{pharmacy.name} Declined Your SOS Request",
            f"{pharmacy.name} doesn't have {sos.medicine_name} available at the moment. "
            "Other nearby pharmacies can still respond.",
            "SOS_UPDATE",
            metadata={
                "event": EVENT_DECLINED,
                "status": "rejected",
                "sosId": sos.id,
                "pharmacyId": pharmacy.id,
                "pharmacyName": pharmacy.name,
                "medicineName": sos.medicine_name,
                "link": PATIENT_SOS_LINK.format(sos_id=sos.id),
            },
            target_role="PATIENT",
        )

    def sos_claimed_by_other(self, db: Session, sos: SosRequest, user_ids: Iterable[str]) -> int:
        return notification_service.broadcast_notification(
            db,
            user_ids,
            "SOS Request Already Fulfilled",
            f"The SOS request for {sos.medicine_name} was accepted by another pharmacy. "
            "No action is needed.",
            "SOS_UPDATE",
            metadata={
                "event": EVENT_CLAIMED,
                "sosId": sos.id,
                "medicineName": sos.medicine_name,
                "link": PHARMACY_SOS_LINK.format(sos_id=sos.id),
            },
            target_role="PHARMACY",
        )

    def retire_dispatch(self, db: Session, sos: SosRequest, user_ids: Iterable[str]) -> int:
        """Mark stale "respond now" prompts as read."""
        return notification_service.mark_event_read(db, user_ids, sos.id, EVENT_DISPATCHED)
