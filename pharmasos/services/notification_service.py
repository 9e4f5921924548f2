"""Notification store: per-user inbox with read state and role scoping.

Every write commits immediately. Emergency notifications are never batched.
"""

import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmasos.core.errors import NotFound
from pharmasos.models.notification import Notification
from pharmasos.models.pharmacy import Pharmacy
from pharmasos.models.user import User

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "SOS_UPDATE",
    "CMS_ALERT",
    "MEDICINE_ALERT",
    "LOW_STOCK_WARNING",
    "EXPIRY_WARNING",
)
TARGET_ROLES = ("PHARMACY", "PATIENT", "ADMIN")
PRIORITIES = ("normal", "high")


def _check_fields(type_: str, target_role: str | None, priority: str) -> None:
    if type_ not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type_}")
    if target_role is not None and target_role not in TARGET_ROLES:
        raise ValueError(f"Unknown target role: {target_role}")
    if priority not in PRIORITIES:
        raise ValueError(f"Unknown priority: {priority}")


def _role_scope(stmt, target_role: str | None):
    """Role filter matches the role itself or role-agnostic (NULL) rows."""
    if target_role is None:
        return stmt
    return stmt.where(
        or_(Notification.target_role == target_role, Notification.target_role.is_(None))
    )


def create_notification(
    db: Session,
    user_id: str,
    title: str,
    message: str,
    type_: str,
    metadata: dict[str, Any] | None = None,
    target_role: str | None = None,
    priority: str = "normal",
) -> Notification:
    """Create a single notification for a user."""
    _check_fields(type_, target_role, priority)
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type_,
        meta=metadata,
        target_role=target_role,
        priority=priority,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.info("Created %s notification for user %s: %s", type_, user_id, title)
    return notification


def broadcast_notification(
    db: Session,
    user_ids: Iterable[str],
    title: str,
    message: str,
    type_: str,
    metadata: dict[str, Any] | None = None,
    target_role: str | None = None,
    priority: str = "normal",
) -> int:
    """
    Same notification for many users. Returns the number of rows created.

    Tries one bulk insert first. If that fails the rows are created one by
    one so a single bad recipient does not cost everybody else their
    notification; any recipient that still fails is logged.
    """
    _check_fields(type_, target_role, priority)
    user_ids = list(dict.fromkeys(user_ids))
    if not user_ids:
        logger.warning("broadcast_notification called with no recipients (%s)", title)
        return 0

    rows = [
        {
            "user_id": uid,
            "title": title,
            "message": message,
            "type": type_,
            "meta": dict(metadata) if metadata else None,
            "target_role": target_role,
            "priority": priority,
        }
        for uid in user_ids
    ]

    try:
        db.execute(insert(Notification), rows)
        db.commit()
        logger.info("Broadcast %s notification to %s users: %s", type_, len(rows), title)
        return len(rows)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Bulk notification insert failed, falling back to per-recipient inserts")

    created = 0
    for row in rows:
        try:
            db.add(Notification(**row))
            db.commit()
            created += 1
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to notify user %s (%s)", row["user_id"], title)

    if created < len(rows):
        logger.error(
            "Partial notification fan-out: %s of %s created (%s)", created, len(rows), title
        )
    return created


def list_for_user(
    db: Session,
    user_id: str,
    limit: int = 20,
    skip: int = 0,
    target_role: str | None = None,
) -> list[Notification]:
    """User's notifications, newest first."""
    stmt = select(Notification).where(Notification.user_id == user_id)
    stmt = _role_scope(stmt, target_role)
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)
    return list(db.execute(stmt).scalars().all())


def unread_count(db: Session, user_id: str, target_role: str | None = None) -> int:
    """Badge count."""
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    stmt = _role_scope(stmt, target_role)
    return db.execute(stmt).scalar_one()


def has_unread_high_priority(db: Session, user_id: str, target_role: str | None = None) -> bool:
    stmt = select(Notification.id).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
        Notification.priority == "high",
    )
    stmt = _role_scope(stmt, target_role).limit(1)
    return db.execute(stmt).first() is not None


def get_notification(db: Session, notification_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification:
        raise NotFound("Notification not found")
    return notification


def mark_read(db: Session, notification_id: str) -> Notification:
    notification = get_notification(db, notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: str) -> int:
    """Mark every unread notification of a user as read. Returns the count."""
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("Marked %s notifications as read for user %s", result.rowcount, user_id)
    return result.rowcount


def delete_notification(db: Session, notification_id: str) -> None:
    result = db.execute(
        delete(Notification)
        .where(Notification.id == notification_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound("Notification not found")
    db.commit()


def find_unread_by_metadata_key(
    db: Session,
    user_id: str,
    key: str,
    value: str,
    type_: str | None = None,
) -> Notification | None:
    """First unread notification of a user whose metadata[key] == value."""
    stmt = select(Notification).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
        Notification.meta[key].as_string() == str(value),
    )
    if type_ is not None:
        stmt = stmt.where(Notification.type == type_)
    return db.execute(stmt.limit(1)).scalar_one_or_none()


def user_ids_with_event(db: Session, sos_id: str, event: str) -> set[str]:
    """Recipients of a given SOS lifecycle event (e.g. the dispatch)."""
    result = db.execute(
        select(Notification.user_id).where(
            Notification.type == "SOS_UPDATE",
            Notification.meta["sosId"].as_string() == sos_id,
            Notification.meta["event"].as_string() == event,
        )
    )
    return set(result.scalars().all())


def mark_event_read(db: Session, user_ids: Iterable[str], sos_id: str, event: str) -> int:
    """Mark unread notifications for one SOS event as read for these users."""
    user_ids = list(user_ids)
    if not user_ids:
        return 0
    result = db.execute(
        update(Notification)
        .where(
            Notification.user_id.in_(user_ids),
            Notification.is_read.is_(False),
            Notification.type == "SOS_UPDATE",
            Notification.meta["sosId"].as_string() == sos_id,
            Notification.meta["event"].as_string() == event,
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


# ---------- Triggers outside the SOS lifecycle ----------
#
# Entry points for the CMS and inventory modules. Only notify_announcement has
# a route here (POST /admin/announcements); the medicine and stock triggers are
# called by the inventory service, which lives outside this package.


def notify_announcement(
    db: Session,
    title: str,
    message: str,
    target_role: str | None = None,
    priority: str = "normal",
    announcement_id: str | None = None,
) -> int:
    """CMS announcement to every active user, or only to one role."""
    stmt = select(User.id).where(User.is_active.is_(True))
    if target_role:
        stmt = stmt.where(User.role == target_role)
    user_ids = list(db.execute(stmt).scalars().all())
    if not user_ids:
        logger.warning("No users found for announcement %s", announcement_id or title)
        return 0
    return broadcast_notification(
        db,
        user_ids,
        title,
        message,
        "CMS_ALERT",
        metadata={"announcementId": announcement_id, "priority": priority},
        target_role=target_role,
        priority=priority,
    )


def notify_medicine_available(
    db: Session,
    patient_id: str,
    medicine_name: str,
    pharmacy_name: str,
) -> Notification:
    """Tell a waiting patient a medicine is back in stock. Library entry point."""
    return create_notification(
        db,
        patient_id,
        f"{medicine_name} is Now Available",
        f"Good news! {medicine_name} is now in stock at {pharmacy_name}. Visit soon to purchase.",
        "MEDICINE_ALERT",
        metadata={"medicineName": medicine_name, "pharmacyName": pharmacy_name},
        target_role="PATIENT",
    )


def warn_low_stock(
    db: Session,
    pharmacy: Pharmacy,
    inventory_id: str,
    medicine_name: str,
    quantity: int,
) -> Notification | None:
    """Low stock warning for the pharmacy owner, once per unread warning.

    Library entry point for the inventory service.
    """
    if find_unread_by_metadata_key(db, pharmacy.user_id, "inventoryId", inventory_id, "LOW_STOCK_WARNING"):
        return None
    return create_notification(
        db,
        pharmacy.user_id,
        f"Low stock: {medicine_name}",
        f"Only {quantity} unit(s) of {medicine_name} left in stock.",
        "LOW_STOCK_WARNING",
        metadata={"inventoryId": inventory_id, "medicineName": medicine_name, "quantity": quantity},
        target_role="PHARMACY",
    )


def warn_expiry(
    db: Session,
    pharmacy: Pharmacy,
    inventory_id: str,
    medicine_name: str,
    expiry_date: date,
) -> Notification | None:
    """Expiry warning for the pharmacy owner, once per unread warning.

    Library entry point for the inventory service.
    """
    if find_unread_by_metadata_key(db, pharmacy.user_id, "inventoryId", inventory_id, "EXPIRY_WARNING"):
        return None
    return create_notification(
        db,
        pharmacy.user_id,
        f"Expiring soon: {medicine_name}",
        f"{medicine_name} expires on {expiry_date.isoformat()}.",
        "EXPIRY_WARNING",
        metadata={
            "inventoryId": inventory_id,
            "medicineName": medicine_name,
            "expiryDate": expiry_date.isoformat(),
        },
        target_role="PHARMACY",
        priority="high",
    )
