"""
Exception handlers that produce the API error body.

WHAT: Maps AppException subclasses, request validation failures,
framework HTTP errors and anything unexpected onto
{"error", "code", "message", "status_code", "details"}.

WHY: A client must be able to handle every failure by reading "code",
whether the failure came from a service, from pydantic, or from routing.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from workorders.core.exceptions import AppException

logger = logging.getLogger(__name__)

# Codes for errors raised by the framework rather than by our services
_HTTP_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
}


def _error_body(
    error: str,
    code: str,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "message": message,
            "status_code": status_code,
            "details": details,
        },
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Service-raised errors.

    Rejections (4xx) are routine and logged at INFO; 5xx are errors.
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(
            f"Request rejected with {exc.error_code} on "
            f"{request.method} {request.url.path}: {exc.message}"
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Pydantic request validation, reported as 400 VALIDATION_ERROR.

    Each entry of details.errors names the offending field by its dotted
    location, e.g. "body.description".
    """
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error_body(
        "ValidationError",
        "VALIDATION_ERROR",
        "Request validation failed",
        400,
        {"errors": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and other errors raised before a handler runs."""
    return _error_body(
        "HTTPException",
        _HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR"),
        exc.detail,
        exc.status_code,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Anything not anticipated.

    The traceback is logged; the client sees a generic INTERNAL_ERROR with
    no internals.
    """
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error_body("InternalServerError", "INTERNAL_ERROR", "An unexpected error occurred", 500)
