"""Service-layer error taxonomy mapped onto HTTP statuses."""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    """Machine-readable error kinds surfaced in the response envelope."""

    VALIDATION = "VALIDATION"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VEHICLE_UNAVAILABLE = "VEHICLE_UNAVAILABLE"
    RESERVATION_CODE_DUPLICATE = "RESERVATION_CODE_DUPLICATE"
    RESERVATION_STATUS_INVALID = "RESERVATION_STATUS_INVALID"
    INTERNAL = "INTERNAL"


class ServiceError(Exception):
    """Base error raised by services; carries kind, status and envelope data."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.kind.value
        self.details = details
        super().__init__(self.message)

    def to_envelope(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationFailed(ServiceError):
    kind = ErrorKind.VALIDATION
    status_code = 400
    default_message = "Validation failed"


class AuthRequired(ServiceError):
    kind = ErrorKind.AUTH_REQUIRED
    status_code = 401
    default_message = "Authentication required"


class Forbidden(ServiceError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Resource not found"


class VehicleUnavailable(ServiceError):
    kind = ErrorKind.VEHICLE_UNAVAILABLE
    status_code = 409
    default_message = "Vehicle is not available for the requested period"


class ReservationCodeDuplicate(ServiceError):
    kind = ErrorKind.RESERVATION_CODE_DUPLICATE
    status_code = 409
    default_message = "Reservation with this code already exists"


class ReservationStatusInvalid(ServiceError):
    kind = ErrorKind.RESERVATION_STATUS_INVALID
    status_code = 400
    default_message = "Invalid reservation status transition"


class InternalError(ServiceError):
    kind = ErrorKind.INTERNAL
    status_code = 500


def invalid_range(message: str = "End must be after start") -> ValidationFailed:
    """Return the error used for empty or inverted half-open ranges."""
    return ValidationFailed(message, code="INVALID_RANGE")


__all__ = [
    "AuthRequired",
    "ErrorKind",
    "Forbidden",
    "InternalError",
    "NotFound",
    "ReservationCodeDuplicate",
    "ReservationStatusInvalid",
    "ServiceError",
    "ValidationFailed",
    "VehicleUnavailable",
    "invalid_range",
]
