"""
Application error taxonomy and the handlers that render it.

Every error leaves the API in the same envelope as successful responses:
``{"success": false, "error": "<message>", ...extra}``.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import is_production

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors that map onto a single HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class Unauthenticated(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(APIError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailed(APIError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(APIError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(APIError):
    status_code = status.HTTP_400_BAD_REQUEST


class ServiceUnavailable(APIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class UpstreamFailure(APIError):
    """
    An identity provider, payment gateway or database call failed.

    The upstream message is only exposed outside production.
    """

    def __init__(self, message: str, detail: str | None = None, **extra):
        if detail and not is_production():
            extra["details"] = detail
        super().__init__(message, **extra)


def error_body(message: str, **extra) -> dict:
    return {"success": False, "error": message, **extra}


async def api_error_handler(request: Request, exc: APIError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, **exc.extra),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    message = f"Invalid value for '{field}': {first.get('msg', 'invalid input')}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(message),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                "Route not found",
                path=request.url.path,
                availableRoutes=[
                    "/health",
                    "/api",
                    "/api/auth",
                    "/api/subjects",
                    "/api/subscription",
                    "/api/admin",
                ],
            ),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
