"""Shared API dependencies and error translation."""

from typing import Annotated

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse

from modledger.core.errors import (
    InvalidStateError,
    ModerationError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from modledger.services.moderation import ModerationService, get_moderation_service

# Seconds a client should wait before retrying after a store outage
RETRY_AFTER_SECONDS = 5

_STATUS_BY_ERROR: dict[type[ModerationError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_moderation_service_dep() -> ModerationService:
    """Get ModerationService dependency for dependency injection."""
    return get_moderation_service()


ServiceDep = Annotated[ModerationService, Depends(get_moderation_service_dep)]


def status_for_error(exc: ModerationError) -> int:
    """Return the HTTP status for a ledger error."""
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def moderation_error_handler(request: Request, exc: ModerationError) -> JSONResponse:
    """Translate ledger errors into JSON responses."""
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=status_for_error(exc),
        content={"detail": str(exc), "retryable": exc.retryable},
        headers=headers,
    )
