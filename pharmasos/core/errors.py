"""Domain errors raised by the SOS services.

All errors subclass ValueError so callers that only care about "bad input"
can keep catching ValueError. The API layer maps each class to a status code.
"""


class SosError(ValueError):
    """Base class for SOS dispatch errors."""


class InvalidCoordinate(SosError):
    """Latitude/longitude missing, non-numeric or out of range."""


class NotFound(SosError):
    """SOS request, pharmacy or notification does not exist."""


class AlreadyClaimed(SosError):
    """Another pharmacy already accepted this SOS request."""

    def __init__(self, sos_id: str) -> None:
        super().__init__("This SOS request was already fulfilled by another pharmacy")
        self.sos_id = sos_id


class Forbidden(SosError):
    """Caller may not act on this resource (e.g. unverified pharmacy)."""


class InvalidDecision(SosError):
    """Pharmacy response is not 'accepted' or 'rejected'."""


class DispatchError(SosError):
    """Candidate resolution failed; the SOS request itself is unaffected."""
