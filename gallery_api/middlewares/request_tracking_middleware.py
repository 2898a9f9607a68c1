"""
In-flight request tracking.

Lets shutdown wait for running requests (for instance a share link
resolution that already consumed a view) to finish.
"""
import asyncio
import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gallery_api.utils.prometheus_metrics import in_flight_requests

logger = logging.getLogger("gallery_api.request_tracking")

# Health checks must keep answering during shutdown
EXCLUDED_PATHS = {"/health", "/health/liveness", "/health/readiness"}


class RequestTracker:
    """Counts in-flight requests; shared between the middleware and the lifespan."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    async def enter(self) -> None:
        async with self._lock:
            self._count += 1
            in_flight_requests.set(self._count)

    async def leave(self) -> None:
        async with self._lock:
            self._count = max(0, self._count - 1)
            in_flight_requests.set(self._count)

    async def wait_for_requests(self, timeout: float = 30.0) -> bool:
        """
        Wait until no request is in flight.

        Returns:
            True when all requests completed, False on timeout
        """
        start_time = time.monotonic()
        while True:
            async with self._lock:
                count = self._count

            if count == 0:
                logger.info("All in-flight requests completed", extra={"event": "lifecycle"})
                return True

            if time.monotonic() - start_time >= timeout:
                logger.warning(
                    f"Timeout waiting for requests (remaining: {count})",
                    extra={"event": "lifecycle", "remaining_requests": count, "timeout": timeout},
                )
                return False

            await asyncio.sleep(0.5)


request_tracker = RequestTracker()


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        await request_tracker.enter()
        try:
            return await call_next(request)
        finally:
            await request_tracker.leave()
