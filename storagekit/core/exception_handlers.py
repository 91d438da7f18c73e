"""Exception handlers for FastAPI apps that serve storage operations.

Register with register_exception_handlers(app). Storage exceptions carry their
own status code, so no code-to-status table is needed here.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storagekit.domain.exceptions import StorageKitException

logger = logging.getLogger(__name__)


def _storage_exception_handler(request: Request, exc: StorageKitException) -> JSONResponse:
    """Return JSON from StorageKitException.to_dict() with its status code."""
    if exc.status_code >= 500:
        logger.error("Storage error on %s: %s (%s) %s", request.url.path, exc.message, exc.code, exc.details)
    else:
        logger.info("Storage request rejected on %s: %s (%s)", request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "message": "Request validation failed",
            "code": "VALIDATION_ERROR",
            "status_code": 422,
            "details": {"errors": exc.errors()},
        },
    )


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "message": exc.detail,
            "code": "HTTP_ERROR",
            "status_code": exc.status_code,
            "details": {},
        },
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500 without exception text."""
    logger.error("Unhandled exception on %s (%s)", request.url.path, type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "status_code": 500,
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Handlers: StorageKitException (and subclasses), RequestValidationError,
    StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(StorageKitException, _storage_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
