"""
Global Exception Handlers

Every error leaves the API in one envelope:

{
    "error": {
        "status_code": 409,
        "error_code": "CONFLICT_HAS_CHILDREN",
        "message": "Cannot delete organization with active sub-organizations",
        "type": "Conflict",
        "details": {"organization_id": "...", "active_children": 2},
        "path": "/api/v1/organizations/..."
    }
}

Clients should branch on ``error_code``; ``message`` is for humans.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from orgtree.exceptions import ErrorCode, OrgTreeError

logger = logging.getLogger(__name__)

ERROR_TYPES = {
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
}

# Error codes for plain HTTPExceptions raised by the framework (404 route, 405, ...)
HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_FAILED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_FAILED,
    500: ErrorCode.INTERNAL_ERROR,
}


def get_error_type(status_code: int) -> str:
    return ERROR_TYPES.get(status_code, "Error")


def get_http_error_code(status_code: int) -> str:
    return HTTP_ERROR_CODES.get(status_code, ErrorCode.UNKNOWN_ERROR).value


def create_error_response(
    status_code: int,
    message: str,
    error_code: str | ErrorCode | None = None,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> JSONResponse:
    """
    Build the error envelope. Optional members are left out when empty.

    Args:
        status_code: HTTP status code
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
        path: Request path that caused the error
    """
    body: dict[str, Any] = {
        "status_code": status_code,
        "message": message,
        "type": get_error_type(status_code),
    }
    optional = {
        "error_code": error_code.value if isinstance(error_code, ErrorCode) else error_code,
        "details": details,
        "path": path,
    }
    body.update({key: value for key, value in optional.items() if value})
    return JSONResponse(status_code=status_code, content={"error": body})


async def orgtree_exception_handler(request: Request, exc: OrgTreeError) -> JSONResponse:
    """Domain errors from the hierarchy engine and the reconciler."""
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s on %s: %s",
        exc.error_code.value,
        request.url.path,
        exc.message,
        extra={"status_code": exc.status_code, "error_code": exc.error_code.value, "path": request.url.path},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details, request.url.path)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        "HTTP %d on %s: %s",
        exc.status_code,
        request.url.path,
        exc.detail,
        extra={"status_code": exc.status_code, "path": request.url.path},
    )
    return create_error_response(
        exc.status_code, str(exc.detail), get_http_error_code(exc.status_code), path=request.url.path
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError | PydanticValidationError
) -> JSONResponse:
    """Malformed request bodies and parameters."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Validation error on %s: %d problem(s)", request.url.path, len(errors))
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        ErrorCode.VALIDATION_FAILED,
        {"validation_errors": errors},
        request.url.path,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internals are logged, never returned.
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
        extra={"method": request.method, "path": request.url.path},
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        ErrorCode.INTERNAL_ERROR,
        path=request.url.path,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    handlers = [
        (OrgTreeError, orgtree_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (PydanticValidationError, validation_exception_handler),
        (Exception, unhandled_exception_handler),
    ]
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)
    logger.debug("Registered %d exception handlers", len(handlers))
