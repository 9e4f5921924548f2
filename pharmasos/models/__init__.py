"""SQLAlchemy models."""

from __future__ import annotations

from pharmasos.models.notification import Notification
from pharmasos.models.pharmacy import Pharmacy
from pharmasos.models.pharmacy_response import PharmacyResponse
from pharmasos.models.sos_request import SosRequest
from pharmasos.models.user import User

__all__ = [
    "User",
    "Notification",
    "Pharmacy",
    "PharmacyResponse",
    "SosRequest",
]
