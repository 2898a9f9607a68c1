"""
Rate limiting with slowapi.

Public share endpoints get a tighter limit than the photographer API:
they are the ones exposed to password guessing and token probing.
"""
import logging
from typing import Callable

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from gallery_api.config import get_settings
from gallery_api.utils.client_ip import get_client_ip
from gallery_api.utils.prometheus_metrics import rate_limit_hits_total

logger = logging.getLogger("gallery_api.rate_limit")
settings = get_settings()


def get_client_identifier(request: Request) -> str:
    """Rate limit key: the client IP as seen through proxies."""
    return get_client_ip(request) or "unknown"


limiter = Limiter(
    key_func=get_client_identifier,
    enabled=settings.rate_limit_enabled,
    storage_uri="memory://",  # per process; use a shared backend when running several workers
)


def setup_rate_limiting(app) -> None:
    """
    Attach the limiter to the app and register the 429 handler.
    """
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        endpoint = request.scope.get("route").path if request.scope.get("route") else request.url.path
        rate_limit_hits_total.labels(endpoint=endpoint).inc()
        logger.warning(
            "Rate limit exceeded",
            extra={
                "event": "rate_limit",
                "client_ip": get_client_identifier(request),
                "endpoint": endpoint,
                "limit": getattr(exc, "detail", "unknown"),
            },
        )
        return _rate_limit_exceeded_handler(request, exc)


def get_rate_limit_decorator(limit: str) -> Callable:
    """
    Rate limit decorator for an endpoint (the endpoint needs a ``request`` parameter).

    Args:
        limit: Rate limit string (e.g. "10/minute", "60/hour")
    """
    if not settings.rate_limit_enabled:
        def noop_decorator(func: Callable) -> Callable:
            return func
        return noop_decorator

    return limiter.limit(limit)


share_rate_limit = get_rate_limit_decorator(f"{settings.rate_limit_share_per_minute}/minute")
api_rate_limit = get_rate_limit_decorator(f"{settings.rate_limit_per_minute}/minute")
