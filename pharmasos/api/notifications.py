"""Notification inbox API."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from pharmasos.api.errors import to_http
from pharmasos.core.config import settings
from pharmasos.core.deps import get_current_user
from pharmasos.db.session import get_db
from pharmasos.models.user import User
from pharmasos.schemas.notification import (
    MarkedCountResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from pharmasos.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])

ROLE_PATTERN = "^(PHARMACY|PATIENT|ADMIN)$"


def _own_notification(db: Session, notification_id: str, user: User):
    try:
        notification = notification_service.get_notification(db, notification_id)
    except ValueError as e:
        raise to_http(e)
    if notification.user_id != user.id:
        # same answer as a missing row
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(default=settings.notifications_page_size, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    role: str | None = Query(default=None, pattern=ROLE_PATTERN),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Newest first. `role` keeps rows for that role plus role-agnostic ones."""
    rows = notification_service.list_for_user(db, current_user.id, limit, skip, role)
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(n) for n in rows],
        limit=limit,
        skip=skip,
        count=len(rows),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    role: str | None = Query(default=None, pattern=ROLE_PATTERN),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Navbar badge."""
    return UnreadCountResponse(
        unread_count=notification_service.unread_count(db, current_user.id, role),
        has_high_priority=notification_service.has_unread_high_priority(db, current_user.id, role),
    )


@router.put("/read-all", response_model=MarkedCountResponse)
def read_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return MarkedCountResponse(marked_count=notification_service.mark_all_read(db, current_user.id))


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def read_one(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _own_notification(db, notification_id, current_user)
    return NotificationResponse.model_validate(notification_service.mark_read(db, notification_id))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _own_notification(db, notification_id, current_user)
    notification_service.delete_notification(db, notification_id)
