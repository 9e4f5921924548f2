"""Admin views over SOS traffic and announcements."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pharmasos.core.deps import require_admin
from pharmasos.db.session import get_db
from pharmasos.models.user import User
from pharmasos.schemas.notification import AnnouncementCreate
from pharmasos.schemas.sos import SosRequestResponse
from pharmasos.services.notification_service import notify_announcement
from pharmasos.services.sos_service import list_all_sos

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/sos", response_model=list[SosRequestResponse])
def list_sos(
    status_filter: str | None = Query(default=None, alias="status", pattern="^(PENDING|ACCEPTED)$"),
    limit: int = Query(default=100, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Every SOS request, newest first."""
    return list_all_sos(db, status_filter, limit, skip)


@router.post("/announcements", status_code=status.HTTP_201_CREATED)
def publish_announcement(
    data: AnnouncementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Broadcast a CMS alert to all active users (or one role)."""
    count = notify_announcement(
        db,
        data.title,
        data.message,
        target_role=data.target_role,
        priority=data.priority,
    )
    return {"status": "published", "notified_count": count}
