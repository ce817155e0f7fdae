"""Custom exception classes and error handling."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": code,
                    "message": message,
                    "details": details or {},
                },
            },
        )


class ValidationError(AppException):
    """Data validation failed."""

    def __init__(
        self,
        message: str = "Validation error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class BadRequestError(AppException):
    """Malformed or out-of-bounds request."""

    def __init__(
        self,
        message: str = "Bad request",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="BAD_REQUEST",
            message=message,
            details=details,
        )


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(
        self,
        resource: str = "Resource",
        identifier: str | None = None,
    ):
        details = {}
        if identifier:
            details["identifier"] = identifier
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            message=f"{resource} not found",
            details=details,
        )


class PublishInProgressError(AppException):
    """Another publish cycle holds the publish lock."""

    def __init__(self, expires_at: str | None = None):
        details = {}
        if expires_at:
            details["lock_expires_at"] = expires_at
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code="PUBLISH_IN_PROGRESS",
            message="A result publish cycle is already running",
            details=details,
        )


class ServiceUnavailableError(AppException):
    """An upstream service is not reachable or not configured."""

    def __init__(
        self,
        message: str = "Service unavailable",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="SERVICE_UNAVAILABLE",
            message=message,
            details=details,
        )


class RateLimitExceededError(AppException):
    """A client used up its request budget."""

    def __init__(
        self,
        message: str = "Too many requests, please try again later.",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code="RATE_LIMITED",
            message=message,
            details=details,
        )


# ==========================================
# Pipeline errors (not rendered over HTTP directly)
# ==========================================

class ChannelError(Exception):
    """A delivery channel rejected or failed a send."""


class SmsGatewayError(ChannelError):
    """The SMS gateway is not configured or a send exhausted its retries."""


class TemplateRenderError(Exception):
    """A message template could not be rendered."""


class StoreError(Exception):
    """Reading from or writing to the relational store failed."""
