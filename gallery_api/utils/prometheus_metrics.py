"""
Prometheus metrics for stability, availability and access decisions.

- FastAPI: request count, latency (Instrumentator)
- Stability: exceptions_total, db_errors_total, storage_conflicts_total
- HA: ready gauge (1=up, 0=shutting down), in_flight_requests
- Access engine: share access outcomes, ledger consumes, invitation operations
"""
import logging
import socket

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from gallery_api.config import get_settings

logger = logging.getLogger(__name__)

# --- Stability ---
exceptions_total = Counter(
    "gallery_api_exceptions_total",
    "Total unhandled exceptions",
    registry=REGISTRY,
)
db_errors_total = Counter(
    "gallery_api_db_errors_total",
    "Total database session/transaction errors",
    registry=REGISTRY,
)
storage_conflicts_total = Counter(
    "gallery_api_storage_conflicts_total",
    "Transient storage failures during access resolution",
    ["stage"],  # stage: attempt | exhausted | commit
    registry=REGISTRY,
)

# --- HA ---
ready = Gauge(
    "gallery_api_ready",
    "1 if the instance accepts traffic, 0 while shutting down",
    registry=REGISTRY,
)
in_flight_requests = Gauge(
    "gallery_api_in_flight_requests",
    "Requests currently being processed",
    registry=REGISTRY,
)

# --- Rate limiting ---
rate_limit_hits_total = Counter(
    "gallery_api_rate_limit_hits_total",
    "Requests rejected by the rate limiter",
    ["endpoint"],
    registry=REGISTRY,
)

# --- Share access ---
share_link_access_total = Counter(
    "gallery_api_share_link_access_total",
    "Share link access attempts by outcome",
    ["result"],  # result: granted | not_found | expired | limit_reached | ...
    registry=REGISTRY,
)
share_link_access_duration_seconds = Histogram(
    "gallery_api_share_link_access_duration_seconds",
    "Time spent resolving a share link access",
    ["result"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)
share_password_verifications_total = Counter(
    "gallery_api_share_password_verifications_total",
    "verify-password calls by outcome",
    ["result"],  # result: verified | rejected
    registry=REGISTRY,
)
share_link_creation_total = Counter(
    "gallery_api_share_link_creation_total",
    "Share links created",
    ["result"],
    registry=REGISTRY,
)

# --- Usage ledger ---
ledger_consume_total = Counter(
    "gallery_api_ledger_consume_total",
    "Conditional counter increments by resource and outcome",
    ["resource", "result"],  # resource: share_link | invitation, result: granted | refused
    registry=REGISTRY,
)

# --- Invitations ---
invitation_operations_total = Counter(
    "gallery_api_invitation_operations_total",
    "Invitation lifecycle operations",
    ["operation", "result"],  # operation: create | send | resend | update | revoke | delete | expire
    registry=REGISTRY,
)


def _node_identity() -> str:
    settings = get_settings()
    return (settings.node_name or "").strip() or socket.gethostname()


def setup_prometheus(app) -> None:
    """
    Register app identity and FastAPI instrumentation, expose /metrics.
    """
    settings = get_settings()

    app_info = Gauge(
        "gallery_api_app_info",
        "Application and node identity (labels only, value is 1)",
        ["node", "app", "version", "environment"],
        registry=REGISTRY,
    )
    app_info.labels(
        node=_node_identity(),
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    ).set(1)

    # status label carries concrete codes (200, 401, 410, ...) instead of 2xx/4xx
    Instrumentator(should_group_status_codes=False).instrument(app).expose(
        app, endpoint="/metrics"
    )
