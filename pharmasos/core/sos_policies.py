"""SOS dispatch policy constants."""

from __future__ import annotations

# Earth radius used by the haversine formula
EARTH_RADIUS_KM = 6371.0

# Only these verification states may receive or answer an SOS
ELIGIBLE_VERIFICATION_STATUSES = ("VERIFIED", "APPROVED")

SOS_PENDING = "PENDING"
SOS_ACCEPTED = "ACCEPTED"

URGENCY_LEVELS = ("LOW", "MEDIUM", "HIGH")

RESPONSE_ACCEPTED = "accepted"
RESPONSE_REJECTED = "rejected"
DECISIONS = (RESPONSE_ACCEPTED, RESPONSE_REJECTED)

# Notification metadata "event" values for one SOS lifecycle
EVENT_DISPATCHED = "sos.dispatched"
EVENT_ACCEPTED = "sos.accepted"
EVENT_DECLINED = "sos.declined"
EVENT_CLAIMED = "sos.claimed_by_other"

PHARMACY_SOS_LINK = "/pharmacy/sos/{sos_id}"
PATIENT_SOS_LINK = "/patient/sos/{sos_id}"
