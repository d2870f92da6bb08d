import logging
import traceback
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from app.utils.exceptions import AppException, ErrorCode

logger = logging.getLogger(__name__)

# Request parts FastAPI puts in front of a field name in ``loc``
_LOCATIONS = {"body", "query", "path"}


def _error_response(
    status_code: int,
    message: str,
    code: str,
    details: list | None = None,
    field: str | None = None,
) -> JSONResponse:
    """Every error leaves the API in the same envelope the Kanban/UI client switches on."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            "error": {"code": code, "details": details, "field": field},
        },
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Lifecycle, permission and lookup errors raised by the services."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")

    error = exc.detail.get("error", {})
    return _error_response(
        exc.status_code,
        exc.message,
        error.get("code", exc.error_code),
        error.get("details"),
        error.get("field"),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Pydantic rejected the payload before it reached a service
    (bad stage name, subject too short, health outside 0-100, malformed date...).
    """
    details = []
    for error in exc.errors():
        # ("body", "subject") -> "subject", ("query", "startDate") -> "startDate"
        loc = [str(part) for part in error.get("loc", ()) if part not in _LOCATIONS]
        details.append({
            "field": ".".join(loc) or "request",
            "message": error.get("msg", "Invalid value"),
        })

    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Some fields are missing or invalid.",
        ErrorCode.VALIDATION_ERROR,
        details,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """
    A unique or foreign-key constraint fired that no service check caught first,
    e.g. two managers registering the same serial number at once.
    """
    logger.warning(f"IntegrityError on {request.method} {request.url.path}: {exc.orig}")
    return _error_response(
        status.HTTP_409_CONFLICT,
        "This change clashes with an existing record (serial number, team name or membership).",
        ErrorCode.DUPLICATE_ENTRY,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected: full traceback to the log, no internals to the client."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url}\n"
        f"{traceback.format_exc()}"
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "GearGuard hit an unexpected error. Please try again later.",
        ErrorCode.INTERNAL_SERVER_ERROR,
    )
