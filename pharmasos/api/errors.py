"""Map domain errors to HTTP errors."""

from fastapi import HTTPException, status

from pharmasos.core.errors import AlreadyClaimed, Forbidden, NotFound

_STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (AlreadyClaimed, status.HTTP_409_CONFLICT),
)


def to_http(error: ValueError) -> HTTPException:
    """Anything not listed (InvalidCoordinate, InvalidDecision, ...) is a 400."""
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(error, error_cls):
            return HTTPException(status_code=code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
