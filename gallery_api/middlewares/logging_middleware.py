"""
Structured request logging middleware.

Logs every HTTP request with its request context.
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gallery_api.utils.logger import (
    set_request_id,
    log_error,
    log_warning,
)
from gallery_api.utils.client_ip import get_client_ip

# Slow response threshold (ms)
SLOW_REQUEST_THRESHOLD_MS = 3000

REQUEST_ID_HEADER = "X-Request-ID"

EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc", "/metrics", "/favicon.ico"}


def _log_path(request: Request) -> str:
    # Share tokens are bearer secrets; keep them out of log files
    path = request.url.path
    if path.startswith("/share/"):
        parts = path.split("/")
        parts[2] = "{token}"
        return "/".join(parts)
    return path


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Request id propagation and request logging.

    - 5xx responses -> ERROR
    - 4xx responses -> WARNING
    - slow responses (3s and more) -> WARNING
    - everything else is not logged
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        rid = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        client_ip = get_client_ip(request)
        user_agent = request.headers.get("user-agent")
        http_path = _log_path(request)

        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            log_error(
                f"Request exception: {type(e).__name__}",
                error_type=type(e).__name__,
                http_method=request.method,
                http_path=http_path,
                duration_ms=duration_ms,
                client_ip=client_ip,
                user_agent=user_agent,
                request_id=rid,
                event="request",
                exc_info=True,
            )
            # Let the global exception handler answer
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = rid
        status_code = response.status_code

        if status_code >= 500:
            log_error(
                "Request error - Server error occurred",
                error_type="ServerError",
                error_code=f"HTTP_{status_code}",
                http_method=request.method,
                http_path=http_path,
                http_status=status_code,
                duration_ms=duration_ms,
                client_ip=client_ip,
                user_agent=user_agent,
                request_id=rid,
                event="request",
            )
        elif status_code >= 400:
            log_warning(
                "Request failed - Client error",
                http_method=request.method,
                http_path=http_path,
                http_status=status_code,
                duration_ms=duration_ms,
                client_ip=client_ip,
                user_agent=user_agent,
                request_id=rid,
                event="request",
            )
        elif duration_ms >= SLOW_REQUEST_THRESHOLD_MS:
            log_warning(
                "Slow request detected",
                http_method=request.method,
                http_path=http_path,
                http_status=status_code,
                duration_ms=duration_ms,
                client_ip=client_ip,
                user_agent=user_agent,
                request_id=rid,
                event="request",
                performance_issue=True,
            )

        return response
