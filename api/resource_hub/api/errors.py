from fastapi import HTTPException, status as http_status

from resource_hub.services.repository import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

_STATUS_BY_ERROR: tuple[tuple[type[RepositoryError], int], ...] = (
    (RepositoryUnavailableError, http_status.HTTP_503_SERVICE_UNAVAILABLE),
    (RepositoryNotFoundError, http_status.HTTP_404_NOT_FOUND),
    (RepositoryConflictError, http_status.HTTP_409_CONFLICT),
    (RepositoryValidationError, http_status.HTTP_400_BAD_REQUEST),
)


def to_http_exception(exc: RepositoryError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
