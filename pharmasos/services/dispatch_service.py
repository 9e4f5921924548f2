"""SOS dispatch: candidate lookup and fan-out to pharmacies."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmasos.core.config import settings
from pharmasos.core.errors import DispatchError, SosError
from pharmasos.core.sos_policies import EVENT_DISPATCHED, SOS_PENDING
from pharmasos.models.sos_request import SosRequest
from pharmasos.services.candidate_service import candidates_for_request
from pharmasos.services.notification_service import user_ids_with_event
from pharmasos.services.notifier import DatabaseNotifier, SosNotifier


class DispatchCoordinator:
    """Notify every candidate pharmacy about a pending SOS request.

    Dispatch runs after the request is committed and never touches the
    request row, so a failed dispatch can simply be run again. Pharmacy
    owners who already received the dispatch for this request are skipped,
    which makes retries safe.
    """

    def __init__(
        self,
        db: Session,
        notifier: SosNotifier | None = None,
        logger: logging.Logger | None = None,
        radius_km: float | None = None,
    ) -> None:
        self.db = db
        self.notifier = notifier or DatabaseNotifier()
        self.logger = logger or logging.getLogger(__name__)
        self.radius_km = radius_km if radius_km is not None else settings.sos_default_radius_km

    def dispatch(self, sos: SosRequest, radius_km: float | None = None) -> int:
        """Fan out one high-priority SOS_UPDATE per candidate. Returns pharmacies notified."""
        radius = radius_km if radius_km is not None else self.radius_km

        if sos.status != SOS_PENDING:
            self.logger.info("SOS %s is %s, nothing to dispatch", sos.id, sos.status)
            return 0

        try:
            candidates = candidates_for_request(self.db, sos, radius_km=radius)
        except SosError:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.exception("Candidate lookup failed for SOS %s", sos.id)
            raise DispatchError(f"Candidate lookup failed for SOS {sos.id}") from e

        if not candidates:
            if sos.has_coordinates:
                self.logger.warning(
                    "No verified pharmacy within %s km of SOS %s (%s)", radius, sos.id, sos.medicine_name
                )
            else:
                self.logger.warning("No verified pharmacy available for SOS %s", sos.id)
            return 0

        already_notified = user_ids_with_event(self.db, sos.id, EVENT_DISPATCHED)
        user_ids = list(dict.fromkeys(c.user_id for c in candidates if c.user_id not in already_notified))
        if not user_ids:
            self.logger.info("All %s candidates already notified for SOS %s", len(candidates), sos.id)
            return 0

        try:
            notified = self.notifier.sos_dispatched(self.db, sos, user_ids)
        except Exception as e:
            self.db.rollback()
            self.logger.exception("Fan-out failed for SOS %s (%s recipients)", sos.id, len(user_ids))
            raise DispatchError(f"Notification fan-out failed for SOS {sos.id}") from e

        if notified < len(user_ids):
            self.logger.error(
                "SOS %s reached %s of %s candidate pharmacies", sos.id, notified, len(user_ids)
            )
        else:
            self.logger.info(
                "SOS %s dispatched to %s pharmacies within %s km", sos.id, notified, radius
            )
        return notified
