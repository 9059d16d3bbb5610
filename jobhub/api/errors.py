import logging

from fastapi import HTTPException, status

from jobhub.core.errors import (
    ConflictError,
    DependencyUnavailableError,
    DomainError,
    DomainValidationError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    QuotaUnavailableError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (DomainValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (QuotaExceededError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (QuotaUnavailableError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DependencyUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(exc: DomainError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    logger.error("unmapped domain error %s: %s", exc.__class__.__name__, exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")
