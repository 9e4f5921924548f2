"""In-app notification model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pharmasos.db.base import Base, new_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """One inbox entry for one user."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_id_is_read", "user_id", "is_read"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # SOS_UPDATE | CMS_ALERT | MEDICINE_ALERT | LOW_STOCK_WARNING | EXPIRY_WARNING
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_role: Mapped[str | None] = mapped_column(String(20), nullable=True)  # PHARMACY | PATIENT | ADMIN | None=all
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")  # normal | high
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
