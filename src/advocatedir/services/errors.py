"""Shared error taxonomy and error-envelope helpers."""

from __future__ import annotations

import json
import logging
import dataclasses
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, assert_never

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"
GENERIC_FAILURE_MESSAGE = "An internal error occurred"


class ErrorKind(StrEnum):
    """Closed set of error kinds; values double as the serialized kind name."""

    VALIDATION = "ValidationError"
    INVALID_PARAMETER = "InvalidParameterError"
    RESOURCE_NOT_FOUND = "ResourceNotFoundError"
    DATABASE = "DatabaseError"
    RESOURCE_ALREADY_EXISTS = "ResourceAlreadyExistsError"
    UNAUTHORIZED = "UnauthorizedError"
    FORBIDDEN = "ForbiddenError"
    RATE_LIMIT = "RateLimitError"
    SERVICE_UNAVAILABLE = "ServiceUnavailableError"


def kind_defaults(kind: ErrorKind) -> tuple[int, str]:
    """
    Return the HTTP-style status and default machine code for an error kind.

    Parameters
    ----------
    kind
        Error kind to resolve.

    Returns
    -------
    tuple[int, str]
        ``(status, code)`` pair for the kind.
    """
    match kind:
        case ErrorKind.VALIDATION:
            return 400, "VALIDATION_ERROR"
        case ErrorKind.INVALID_PARAMETER:
            return 400, "INVALID_PARAMETER"
        case ErrorKind.RESOURCE_NOT_FOUND:
            return 404, "RESOURCE_NOT_FOUND"
        case ErrorKind.DATABASE:
            return 500, "DATABASE_ERROR"
        case ErrorKind.RESOURCE_ALREADY_EXISTS:
            return 409, "RESOURCE_ALREADY_EXISTS"
        case ErrorKind.UNAUTHORIZED:
            return 401, "UNAUTHORIZED"
        case ErrorKind.FORBIDDEN:
            return 403, "FORBIDDEN"
        case ErrorKind.RATE_LIMIT:
            return 429, "RATE_LIMIT_EXCEEDED"
        case ErrorKind.SERVICE_UNAVAILABLE:
            return 503, "SERVICE_UNAVAILABLE"
        case _:
            assert_never(kind)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(eq=False)
class AppError(Exception):
    """
    Application error tagged with an :class:`ErrorKind`.

    Instances are created at the point of failure and travel unchanged to the
    response boundary; use the factory functions below instead of calling the
    constructor directly.
    """

    kind: ErrorKind
    message: str
    code: str
    status: int
    field: str | None = None
    parameter: str | None = None
    value: object | None = None
    timestamp: datetime = dataclasses.field(default_factory=_utcnow)
    path: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        """
        Return a concise string for logging/diagnostics.

        Returns
        -------
        str
            ``<kind>: <message>`` representation.
        """
        return f"{self.kind.value}: {self.message}"

    @property
    def is_client_error(self) -> bool:
        """Return True when the status is in the 4xx range."""
        return 400 <= self.status < 500  # noqa: PLR2004


def app_error(  # noqa: PLR0913
    kind: ErrorKind,
    message: str,
    *,
    code: str | None = None,
    field: str | None = None,
    parameter: str | None = None,
    value: object | None = None,
    path: str | None = None,
) -> AppError:
    """
    Create an AppError with status and code defaults for its kind.

    Parameters
    ----------
    kind
        Error kind tag.
    message
        Human-readable description.
    code
        Machine code override; defaults to the kind's code.
    field
        Optional record field the error refers to.
    parameter
        Optional request parameter the error refers to.
    value
        Optional offending value (kept for diagnostics, never serialized).
    path
        Optional request path.

    Returns
    -------
    AppError
        Fully populated error instance.
    """
    status, default_code = kind_defaults(kind)
    return AppError(
        kind=kind,
        message=message,
        code=code or default_code,
        status=status,
        field=field,
        parameter=parameter,
        value=value,
        path=path,
    )


# ---------------------------------------------------------------------------
# Validation family
# ---------------------------------------------------------------------------


def validation_error(
    message: str = "Validation failed",
    *,
    field: str | None = None,
    value: object | None = None,
    code: str = "VALIDATION_ERROR",
) -> AppError:
    """Construct a generic validation failure."""
    return app_error(ErrorKind.VALIDATION, message, code=code, field=field, value=value)


def required_field(field: str) -> AppError:
    """Construct a validation failure for a missing required field."""
    return validation_error(
        f"Field '{field}' is required",
        field=field,
        code="REQUIRED_FIELD_ERROR",
    )


def invalid_format(field: str, value: object, expected_format: str) -> AppError:
    """Construct a validation failure for a malformed value."""
    return validation_error(
        f"Field '{field}' has invalid format. Expected: {expected_format}",
        field=field,
        value=value,
        code="INVALID_FORMAT_ERROR",
    )


def invalid_range(
    field: str,
    value: object,
    minimum: float | None = None,
    maximum: float | None = None,
) -> AppError:
    """
    Construct a validation failure for an out-of-range value.

    Returns
    -------
    AppError
        Validation error describing the permitted range.
    """
    if minimum is not None and maximum is not None:
        bounds = f"between {minimum} and {maximum}"
    elif minimum is not None:
        bounds = f"greater than or equal to {minimum}"
    else:
        bounds = f"less than or equal to {maximum}"
    return validation_error(
        f"Field '{field}' must be {bounds}",
        field=field,
        value=value,
        code="INVALID_RANGE_ERROR",
    )


def bad_request(message: str = "Bad request") -> AppError:
    """Construct a malformed-request failure."""
    return validation_error(message, code="BAD_REQUEST")


def invalid_parameter(
    parameter: str,
    message: str | None = None,
    *,
    value: object | None = None,
    field: str | None = None,
) -> AppError:
    """
    Construct an invalid-parameter failure attributed to a request parameter.

    Returns
    -------
    AppError
        Error carrying the offending parameter name.
    """
    return app_error(
        ErrorKind.INVALID_PARAMETER,
        message or f"Invalid parameter: {parameter}",
        parameter=parameter,
        field=field,
        value=value,
    )


# ---------------------------------------------------------------------------
# Resource, access and availability families
# ---------------------------------------------------------------------------


def _describe_resource(resource: str, identifier: str | int | None, suffix: str) -> str:
    if identifier is None or identifier == "":
        return f"{resource} {suffix}"
    return f"{resource} with identifier '{identifier}' {suffix}"


def resource_not_found(resource: str, identifier: str | int | None = None) -> AppError:
    """Construct a not-found failure for a resource lookup."""
    return app_error(
        ErrorKind.RESOURCE_NOT_FOUND, _describe_resource(resource, identifier, "not found")
    )


def resource_already_exists(resource: str, identifier: str | int | None = None) -> AppError:
    """Construct a conflict failure for a duplicate resource."""
    return app_error(
        ErrorKind.RESOURCE_ALREADY_EXISTS,
        _describe_resource(resource, identifier, "already exists"),
    )


def unauthorized(message: str = "Unauthorized access") -> AppError:
    """Construct an authentication failure."""
    return app_error(ErrorKind.UNAUTHORIZED, message)


def forbidden(message: str = "Access forbidden") -> AppError:
    """Construct an authorization failure."""
    return app_error(ErrorKind.FORBIDDEN, message)


def rate_limited(message: str = "Rate limit exceeded") -> AppError:
    """Construct a throttling failure."""
    return app_error(ErrorKind.RATE_LIMIT, message)


def service_unavailable(message: str = "Service temporarily unavailable") -> AppError:
    """Construct a temporary-unavailability failure."""
    return app_error(ErrorKind.SERVICE_UNAVAILABLE, message)


def request_cancelled(message: str = "Request was cancelled by the client") -> AppError:
    """Construct the failure raised when the caller abandoned the request."""
    return app_error(ErrorKind.SERVICE_UNAVAILABLE, message, code="REQUEST_CANCELLED")


def database_error(
    message: str = "Database operation failed", *, code: str = "DATABASE_ERROR"
) -> AppError:
    """Construct a store failure."""
    return app_error(ErrorKind.DATABASE, message, code=code)


def database_connection_error(message: str = "Database connection failed") -> AppError:
    """Construct a store connectivity failure."""
    return database_error(message, code="DATABASE_CONNECTION_ERROR")


def database_query_error(message: str = "Database query failed") -> AppError:
    """Construct a store query failure."""
    return database_error(message, code="DATABASE_QUERY_ERROR")


# ---------------------------------------------------------------------------
# Serialization and adapters
# ---------------------------------------------------------------------------


def to_error_response(error: AppError, path: str | None = None) -> dict[str, Any]:
    """
    Serialize any AppError into the canonical error payload.

    Parameters
    ----------
    error
        Error to serialize.
    path
        Request path; falls back to the path stored on the error.

    Returns
    -------
    dict[str, Any]
        ``{error, message, code, statusCode, field?, parameter?, timestamp, path?}``.
    """
    payload: dict[str, Any] = {
        "error": error.kind.value,
        "message": error.message,
        "code": error.code,
        "statusCode": error.status,
    }
    if error.field:
        payload["field"] = error.field
    if error.parameter:
        payload["parameter"] = error.parameter
    payload["timestamp"] = error.timestamp.isoformat()
    resolved_path = path if path is not None else error.path
    if resolved_path is not None:
        payload["path"] = resolved_path
    return payload


def handle_unknown_error(error: object, *, expose_details: bool = True) -> AppError:
    """
    Convert any failure into an AppError.

    Parameters
    ----------
    error
        Raised object of unknown type.
    expose_details
        When False, exception text is replaced by a generic message so that
        store internals never reach callers.

    Returns
    -------
    AppError
        The error itself when already an AppError, otherwise a Database error.
    """
    if isinstance(error, AppError):
        return error
    if isinstance(error, BaseException):
        message = str(error) if expose_details else GENERIC_FAILURE_MESSAGE
        return database_error(message or UNKNOWN_ERROR_MESSAGE)
    return database_error(UNKNOWN_ERROR_MESSAGE)


def log_app_error(
    logger: logging.Logger | logging.LoggerAdapter,
    error: AppError,
    path: str | None = None,
) -> None:
    """Emit an AppError as a structured log line; client errors stay at INFO."""
    payload = json.dumps(to_error_response(error, path))
    if error.is_client_error:
        logger.info(payload)
    else:
        logger.error(payload)


__all__ = [
    "GENERIC_FAILURE_MESSAGE",
    "UNKNOWN_ERROR_MESSAGE",
    "AppError",
    "ErrorKind",
    "app_error",
    "bad_request",
    "database_connection_error",
    "database_error",
    "database_query_error",
    "forbidden",
    "handle_unknown_error",
    "invalid_format",
    "invalid_parameter",
    "invalid_range",
    "kind_defaults",
    "log_app_error",
    "rate_limited",
    "request_cancelled",
    "required_field",
    "resource_already_exists",
    "resource_not_found",
    "service_unavailable",
    "to_error_response",
    "unauthorized",
    "validation_error",
]
