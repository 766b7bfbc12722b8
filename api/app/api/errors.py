from fastapi import HTTPException, status

from app.services.errors import (
    AuthorizationError,
    ConcurrencyError,
    ConflictError,
    InvalidTransition,
    MarketplaceError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

ERROR_STATUS_CODES: dict[type[MarketplaceError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ConcurrencyError: status.HTTP_409_CONFLICT,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: MarketplaceError) -> HTTPException:
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if isinstance(exc, ConcurrencyError):
        return HTTPException(status_code=status_code, detail={"message": str(exc), "retryable": True})
    return HTTPException(status_code=status_code, detail=str(exc))
