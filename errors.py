"""
Error types raised by the services and their HTTP translation.

Routes never build error responses by hand: services raise one of the
classes below and the handlers registered in main.py turn it into
``{"success": false, "message", "code", "details"}`` with the matching
status code.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for all errors surfaced to API callers"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(AppError):
    """Missing required field or malformed value"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)
        self.field = field


class DuplicateError(AppError):
    """Natural key already used by an active record"""

    status_code = 400

    def __init__(self, message: str, key: Optional[str] = None, value: Any = None):
        details = {}
        if key:
            details["key"] = key
            details["value"] = value
        super().__init__(message, code="DUPLICATE", details=details)
        self.key = key


class InvalidTransitionError(AppError):
    """Status change not allowed from the current status"""

    status_code = 400

    def __init__(self, message: str, current_status: Optional[str] = None):
        details = {"status": current_status} if current_status else {}
        super().__init__(message, code="INVALID_TRANSITION", details=details)


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found",
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class AuthenticationError(AppError):
    """No credentials, or credentials that could not be verified"""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="AUTH_REQUIRED")


class AuthorizationError(AppError):
    """Authenticated, but the role may not perform this action"""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, code="NOT_AUTHORIZED")


class ServerError(AppError):
    """Persistence or infrastructure fault"""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="SERVER_ERROR")


# ----------------------------
# FASTAPI HANDLERS
# ----------------------------
def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies and query params are client errors like any other validation failure
    first = exc.errors()[0] if exc.errors() else {}
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    field = ".".join(loc) or None
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content=ValidationError(message, field=field).to_dict(),
    )


def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content=ServerError().to_dict())
