"""Common exception utilities for FastAPI routers."""

from typing import NoReturn

from fastapi import HTTPException, status

from clipmatch.services.errors import (
    AutoMatchInterruptedError,
    ComputationError,
    ConfigurationError,
    ConflictError,
    MatchingError,
    NotFoundError,
    ValidationError,
)


def raise_not_found(resource_name: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{resource_name} not found",
    ) from cause


def raise_bad_request(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    ) from cause


def raise_conflict(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    ) from cause


def raise_unprocessable(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=422,
        detail=detail,
    ) from cause


def raise_internal_error(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    ) from cause


def raise_for_matching_error(exc: MatchingError) -> NoReturn:
    """Translate a matching core error into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        raise_not_found(f"{exc.resource} {exc.identifier}", cause=exc)
    if isinstance(exc, ConflictError):
        raise_conflict(str(exc), cause=exc)
    if isinstance(exc, ConfigurationError):
        raise_bad_request(str(exc), cause=exc)
    if isinstance(exc, (ValidationError, ComputationError)):
        raise_unprocessable(str(exc), cause=exc)
    if isinstance(exc, AutoMatchInterruptedError):
        raise_internal_error(str(exc), cause=exc)
    raise_internal_error("Matching failed", cause=exc)
