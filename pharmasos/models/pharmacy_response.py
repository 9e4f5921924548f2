"""Pharmacy response to an SOS request. Append-only."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from pharmasos.db.base import Base, new_id


class PharmacyResponse(Base):
    __tablename__ = "pharmacy_responses"
    __table_args__ = (
        UniqueConstraint("sos_id", "pharmacy_id", "response", name="uq_pharmacy_response_sos_pharmacy_response"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    sos_id: Mapped[str] = mapped_column(
        ForeignKey("sos_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pharmacy_id: Mapped[str] = mapped_column(
        ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    response: Mapped[str] = mapped_column(String(10), nullable=False)  # accepted | rejected
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )
