"""
Exception handlers rendering every failure as the standard error body.

MCP and model errors arrive as AppException subclasses and keep their
ErrorCode; FastAPI/pydantic validation errors and bare HTTPExceptions are
mapped onto the same shape. Anything else becomes INT_9001 with details
only in debug mode.
"""

from __future__ import annotations

import traceback

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from toolstream.api.middleware.request_context import get_request_context, get_request_id
from toolstream.core.constants import get_settings
from toolstream.core.exceptions import AppException
from toolstream.models.error_models import ErrorCode, ErrorDetail, ErrorResponse, get_status_code
from toolstream.utils.logger import logger

_HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}


def _respond(
    request: Request,
    status_code: int,
    code: ErrorCode,
    message: str,
    details: list[ErrorDetail] | None = None,
    debug_info: dict[str, Any] | None = None,
) -> JSONResponse:
    error = ErrorResponse(
        code=code,
        message=message,
        request_id=get_request_id(),
        path=request.url.path,
        details=details,
        debug=debug_info,
    )
    return JSONResponse(status_code=status_code, content=error.to_dict(include_debug=debug_info is not None))


def _log_error(error: Exception, code: ErrorCode, status_code: int, **fields: Any) -> None:
    ctx = get_request_context()
    log_context = ctx.to_log_context() if ctx else {}
    log_context.update(fields, error_code=code.value, status_code=status_code)

    if status_code >= 500:
        logger.error(f"Server error: {code.value} - {error}", exc_info=True, **log_context)
    else:
        logger.warning(f"Client error: {code.value} - {error}", **log_context)


def _app_error_details(exc: AppException) -> list[ErrorDetail] | None:
    """Render AppException.details; a ``field`` entry names the offending config field."""
    if not exc.details:
        return None
    details: list[ErrorDetail] = []
    for key, value in exc.details.items():
        if key == "field":
            details.append(ErrorDetail(field=str(value), message=exc.message, code=exc.code.value))
        else:
            details.append(ErrorDetail(field=key, message=str(value)))
    return details


def _validation_details(errors: Any) -> list[ErrorDetail]:
    return [
        ErrorDetail(field=".".join(str(loc) for loc in error["loc"]), message=error["msg"], code=error["type"])
        for error in errors
    ]


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Config, connection, not-connected and tool errors raised by routes."""
    status_code = get_status_code(exc.code)
    debug_info = None
    if get_settings().debug:
        debug_info = {"exception_type": type(exc).__name__, "cause": repr(exc.cause) if exc.cause else None}

    _log_error(exc, exc.code, status_code, **(exc.details or {}))
    return _respond(request, status_code, exc.code, exc.message, _app_error_details(exc), debug_info)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    _log_error(exc, code, exc.status_code)
    return _respond(request, exc.status_code, code, message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request bodies and query parameters that fail validation (422)."""
    _log_error(exc, ErrorCode.VALIDATION_ERROR, 422)
    return _respond(
        request, 422, ErrorCode.VALIDATION_ERROR, "Request validation failed", _validation_details(exc.errors())
    )


async def pydantic_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Model validation failing inside a route, e.g. an MCP result that does not parse."""
    _log_error(exc, ErrorCode.VALIDATION_ERROR, 422)
    return _respond(
        request, 422, ErrorCode.VALIDATION_ERROR, "Data validation failed", _validation_details(exc.errors())
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}", exc_info=True, request_id=get_request_id())

    debug_info = None
    if get_settings().debug:
        debug_info = {
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "traceback": traceback.format_exc(),
        }
    return _respond(request, 500, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred", debug_info=debug_info)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    # Starlette's signature expects Exception; narrower handler types work at runtime
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, pydantic_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
