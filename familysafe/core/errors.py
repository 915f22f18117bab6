"""
Error taxonomy shared by the service modules, the session runtime and the HTTP layer.

Every error carries a ``kind`` (machine readable), a human readable message
and a ``context`` dict with whatever ids were involved. The FastAPI layer
maps kinds to status codes; the session runtime hands errors to its caller
untouched so the UI decides how to present them.
"""
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from postgrest.exceptions import APIError


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    SERVICE = "service"


class FamilySafeError(Exception):
    kind: ErrorKind = ErrorKind.SERVICE
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "detail": self.message, "context": self.context}


class ValidationError(FamilySafeError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class PermissionDeniedError(FamilySafeError):
    kind = ErrorKind.PERMISSION
    status_code = 403


class NotFoundError(FamilySafeError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ConflictError(FamilySafeError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class TransientNetworkError(FamilySafeError):
    kind = ErrorKind.TRANSIENT
    status_code = 503


class ServiceError(FamilySafeError):
    kind = ErrorKind.SERVICE
    status_code = 500


class GeolocationError(FamilySafeError):
    """Device position could not be read. ``code`` is one of the class constants."""

    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"

    MESSAGES = {
        PERMISSION_DENIED: "Location permission is required. Allow location access in your device settings.",
        POSITION_UNAVAILABLE: "Your position could not be determined. Check that GPS is turned on.",
        TIMEOUT: "Getting your position timed out. Please try again.",
    }

    def __init__(self, code: str, **context: Any):
        super().__init__(self.MESSAGES.get(code, "Getting your position failed."), code=code, **context)
        self.code = code
        if code == self.PERMISSION_DENIED:
            self.kind = ErrorKind.PERMISSION
        else:
            self.kind = ErrorKind.TRANSIENT


# PostgREST / Postgres error codes we translate
_NOT_FOUND_CODES = {"PGRST116"}
_CONFLICT_CODES = {"23505"}
_PERMISSION_CODES = {"42501", "PGRST301", "PGRST302"}
_VALIDATION_CODES = {"23502", "23503", "23514", "22P02", "PGRST102"}


def service_error(exc: Exception, detail: str, **context: Any) -> FamilySafeError:
    """Translate a backend exception into the taxonomy. Typed errors pass through."""
    if isinstance(exc, FamilySafeError):
        return exc
    if isinstance(exc, APIError):
        code = exc.code or ""
        message = f"{detail}: {exc.message}" if exc.message else detail
        if code in _NOT_FOUND_CODES:
            return NotFoundError(message, code=code, **context)
        if code in _CONFLICT_CODES:
            return ConflictError(message, code=code, **context)
        if code in _PERMISSION_CODES:
            return PermissionDeniedError(message, code=code, **context)
        if code in _VALIDATION_CODES:
            return ValidationError(message, code=code, **context)
        return ServiceError(message, code=code, **context)
    if isinstance(exc, (httpx.TransportError, httpx.TimeoutException)):
        return TransientNetworkError(f"{detail}: {exc}", **context)
    return ServiceError(f"{detail}: {exc}", **context)


def is_not_found(exc: Exception) -> bool:
    return isinstance(exc, NotFoundError) or (isinstance(exc, APIError) and exc.code in _NOT_FOUND_CODES)


def require(condition: bool, message: str, **context: Any) -> None:
    """Client-side validation guard, raised before any network call."""
    if not condition:
        raise ValidationError(message, **context)


def optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
