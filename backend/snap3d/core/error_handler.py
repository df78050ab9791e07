"""
Exception handlers that turn every failure into the service's error body:

    {"error": {"type", "code", "message", "details", "request_id"}}

4xx responses are `user_error` and logged at WARNING without a stack trace;
everything else is `system_error` and logged at ERROR (CRITICAL when the
exception was not an AppException).
"""

import traceback
from typing import Any, Dict, Optional, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from snap3d.core.exceptions import AppException, ErrorCode
from snap3d.core.logging_config import get_context_logger

# Plain HTTP errors raised by routing or by the preview/frame routes
HTTP_ERROR_CODES: Dict[int, Union[ErrorCode, str]] = {
    400: ErrorCode.VALIDATION_INVALID_INPUT,
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    503: ErrorCode.EXT_SERVICE_UNREACHABLE,
}


def classify_error_type(exception: Exception) -> str:
    """4xx and request validation are user errors; everything else is a system error."""
    if isinstance(exception, RequestValidationError):
        return "user_error"
    status_code = getattr(exception, "status_code", 500)
    return "user_error" if 400 <= status_code < 500 else "system_error"


def format_error_response(
    error_code: str,
    message: str,
    error_type: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    error: Dict[str, Any] = {
        "type": error_type,
        "code": error_code,
        "message": message,
        "details": details or {},
    }
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


def _respond(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    error_type: str,
    details: Optional[Dict[str, Any]] = None,
    exc: Optional[BaseException] = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger = get_context_logger("error_handler", request_id)
    log_extra = {
        "error_code": error_code,
        "error_type": error_type,
        "status_code": status_code,
        "path": request.url.path,
        "method": request.method,
    }

    if error_type == "user_error":
        logger.warning(f"{request.method} {request.url.path} -> {status_code} {error_code}: {message}", extra=log_extra)
    else:
        logger.error(f"{request.method} {request.url.path} -> {status_code} {error_code}: {message}",
                     extra=log_extra, exc_info=exc)

    return JSONResponse(
        status_code=status_code,
        content=format_error_response(error_code, message, error_type, details, request_id),
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return _respond(
        request,
        exc.status_code,
        exc.error_code.value,
        exc.message,
        classify_error_type(exc),
        exc.details,
        exc,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body or parameter failed schema validation."""
    validation_errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _respond(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.VALIDATION_INVALID_INPUT.value,
        "Request validation failed",
        "user_error",
        {"validation_errors": validation_errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.SYS_INTERNAL_ERROR)
    if isinstance(error_code, ErrorCode):
        error_code = error_code.value
    return _respond(request, exc.status_code, error_code, str(exc.detail), classify_error_type(exc))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything that escaped the pipeline's own error mapping."""
    request_id = getattr(request.state, "request_id", None)
    get_context_logger("error_handler", request_id).critical(
        f"Unexpected error: {exc}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
            "stack_trace": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        },
    )

    # Internal details stay in the log
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error_response(
            ErrorCode.SYS_INTERNAL_ERROR.value,
            "An internal error occurred. Please try again later",
            "system_error",
            {"exception_type": type(exc).__name__},
            request_id,
        ),
    )
