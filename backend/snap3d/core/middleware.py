"""
Custom middleware for request logging and request ID propagation.
"""
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import time
import uuid
from typing import Callable
from snap3d.core.logging_config import set_request_id, clear_request_id, get_context_logger

# Long-lived responses; completion is not logged for these
STREAMING_PATHS = ("/api/v1/viewer/stream",)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests with timing information and request ID propagation."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        set_request_id(request_id)

        ctx_logger = get_context_logger("middleware", request_id)

        start_time = time.time()

        log_extra = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        }

        ctx_logger.info(f"Request started: {request.method} {request.url.path}", extra=log_extra)

        try:
            response = await call_next(request)

            duration = time.time() - start_time

            log_extra.update({
                "status_code": response.status_code,
                "duration_seconds": round(duration, 3),
            })

            if request.url.path not in STREAMING_PATHS:
                ctx_logger.info(
                    f"Request completed: {request.method} {request.url.path} - "
                    f"Status: {response.status_code} - Duration: {duration:.3f}s",
                    extra=log_extra
                )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration = time.time() - start_time
            ctx_logger.error(
                f"Request failed: {request.method} {request.url.path} - "
                f"Error: {str(e)} - Duration: {duration:.3f}s",
                extra={
                    **log_extra,
                    "duration_seconds": round(duration, 3),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            raise
        finally:
            clear_request_id()
