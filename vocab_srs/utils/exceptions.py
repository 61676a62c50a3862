"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional

from fastapi import status
from loguru import logger


class SRSException(Exception):
    """Base exception for the application."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(SRSException):
    """Malformed input rejected before any state mutation."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidRatingError(ValidationError, ValueError):
    """Rating outside the accepted review scale."""


class NotFoundError(SRSException):
    """Progress record or vocabulary item does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(SRSException):
    """A write is not newer than the stored state and was already applied."""

    status_code = status.HTTP_409_CONFLICT


class StoreUnavailableError(SRSException):
    """Transient storage failure; the caller may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class SessionError(SRSException):
    """Review session related errors."""


class SessionStateError(SessionError):
    """Operation not allowed in the current session state."""


class CardOrderError(SessionError):
    """Card transition attempted out of order, e.g. rating before flipping."""


def error_payload(error: SRSException) -> Dict[str, Any]:
    """Build the JSON body returned for an application error."""

    payload: Dict[str, Any] = {"detail": error.message}
    if error.details:
        payload["details"] = error.details
    if isinstance(error, StoreUnavailableError):
        payload["retryable"] = True
    return payload


def log_error(error: SRSException) -> None:
    """Log an application error at a level matching its severity."""

    if error.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            "{} raised: {}", type(error).__name__, error.message, details=error.details
        )
    else:
        logger.warning(
            "{} raised: {}", type(error).__name__, error.message, details=error.details
        )
