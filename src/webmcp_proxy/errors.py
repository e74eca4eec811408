"""
Error taxonomy and the backend error mapper.

Two families:
- Request-level (MethodNotAllowed, Forbidden, BadRequest): raised by the
  dispatcher while checking the request, before any backend call.
- Backend-level (PermissionDenied, NotFound, ValidationFailed,
  InvalidRequest): raised by ResourceApiClient implementations.

map_exception() turns any of these - or anything else - into a status code
and a ResultEnvelope. It never raises.
"""

from dataclasses import dataclass
from typing import Any, Optional


class GatewayError(Exception):
    """Base for every classified failure."""
    status: int = 500
    public_message: Optional[str] = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_result(self) -> dict[str, Any]:
        if self.public_message:
            result = {"error": True, "message": self.public_message}
            if self.message:
                result["details"] = self.message
            return result
        return {"error": True, "message": self.message or self.__class__.__name__}


# === REQUEST-LEVEL ===

class MethodNotAllowed(GatewayError):
    status = 405

    def __init__(self, message: str = "Method not allowed."):
        super().__init__(message)


class Forbidden(GatewayError):
    """Missing or invalid anti-forgery token."""
    status = 403

    def __init__(self, message: str = "Invalid CSRF token."):
        super().__init__(message)


class BadRequest(GatewayError):
    status = 400


class UnknownOperation(BadRequest):
    def __init__(self, operation: str):
        super().__init__(f"Unknown operation: {operation}")
        self.operation = operation


# === BACKEND-LEVEL ===

class BackendError(GatewayError):
    """Raised by ResourceApiClient implementations."""


class PermissionDenied(BackendError):
    status = 403
    public_message = "Permission denied."


class NotFound(BackendError):
    status = 404
    public_message = "Not found."


class ValidationFailed(BackendError):
    status = 422


class InvalidRequest(BackendError):
    """Malformed or unsupported request, e.g. an unknown resource type."""
    status = 400


# === MAPPER ===

@dataclass
class MappedError:
    status: int
    result: dict[str, Any]
    kind: str


def map_exception(exc: BaseException) -> MappedError:
    """
    Classify a failure into (status, ResultEnvelope).

    permission denied -> 403, generic message + raw details
    not found         -> 404, generic message + raw details
    validation        -> 422, raw message
    bad request       -> 400, raw message
    anything else     -> 500, raw message
    """
    if isinstance(exc, GatewayError):
        return MappedError(status=exc.status, result=exc.to_result(), kind=exc.__class__.__name__)

    message = str(exc) or exc.__class__.__name__
    return MappedError(status=500, result={"error": True, "message": message}, kind="Internal")
