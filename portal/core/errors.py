"""Error taxonomy shared by the API and the client.

Every server-side error is rendered as JSON ``{"error": message}`` with the
status code carried by the exception class.
"""
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from portal.core.logging import get_logger

logger = get_logger(__name__)


class PortalError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthorized(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class InvalidCredentials(Unauthorized):
    default_message = "Invalid email or password"


class Forbidden(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(PortalError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class ServerError(PortalError):
    pass


class NetworkError(PortalError):
    """Raised by the client when the API cannot be reached."""

    status_code = 0
    default_message = "Network error"


ERRORS_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ValidationError,
    status.HTTP_401_UNAUTHORIZED: Unauthorized,
    status.HTTP_403_FORBIDDEN: Forbidden,
    status.HTTP_404_NOT_FOUND: NotFound,
    status.HTTP_409_CONFLICT: Conflict,
    422: ValidationError,
}


def error_for_status(status_code: int, message: Optional[str] = None) -> PortalError:
    """Build the exception matching an HTTP status (client side)."""
    error_cls = ERRORS_BY_STATUS.get(status_code)
    if error_cls is None:
        error_cls = ServerError if status_code >= 500 else ValidationError
    return error_cls(message)


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Convert every error raised by a route into ``{"error": message}``."""

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = _describe_validation(exc)
        logger.info(f"Rejected request body on {request.url.path}: {message}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail if isinstance(exc.detail, str) else str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )
