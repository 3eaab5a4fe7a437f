"""
AssetLogix - Prometheus Metrics
===============================
Centralized metrics definitions for observability.
"""

from typing import Any, Dict

from prometheus_client import Counter, Histogram, Gauge, Info

# =============================================================================
# Application Info
# =============================================================================

app_info = Info("assetlogix_app", "Application information")
app_info.info({
    "version": "1.0.0",
    "service": "backend",
})

# =============================================================================
# Request Metrics
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    labelnames=["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0)
)

rate_limited_requests_total = Counter(
    "rate_limited_requests_total",
    "Requests rejected by the rate limiter",
    labelnames=["scope"]
)

# =============================================================================
# Authentication Metrics
# =============================================================================

auth_attempts_total = Counter(
    "auth_attempts_total",
    "Login attempts by outcome",
    labelnames=["outcome"]
)

active_sessions = Gauge(
    "active_sessions",
    "Sessions created minus sessions revoked since startup"
)

# =============================================================================
# Document Metrics
# =============================================================================

document_activity_total = Counter(
    "document_activity_total",
    "Document activity entries logged",
    labelnames=["action"]
)

uploaded_bytes_total = Counter(
    "uploaded_bytes_total",
    "Bytes written to upload storage",
    labelnames=["kind"]
)

# =============================================================================
# Maintenance Metrics
# =============================================================================

notifications_sent_total = Counter(
    "notifications_sent_total",
    "Maintenance notification emails by outcome",
    labelnames=["outcome"]
)

equipment_assignments_total = Counter(
    "equipment_assignments_total",
    "Equipment assignment transitions",
    labelnames=["event"]
)

# =============================================================================
# Database Metrics
# =============================================================================

database_is_healthy = Gauge(
    "database_is_healthy",
    "Database health status (1=healthy, 0=unhealthy)"
)

schema_patches_applied_total = Counter(
    "schema_patches_applied_total",
    "Schema changes applied by the patcher",
    labelnames=["kind"]
)

# =============================================================================
# Helpers
# =============================================================================


def route_template(path: str, path_params: Dict[str, Any]) -> str:
    """
    Rebuild the route template of a matched request path.

    Segments holding a path parameter value are swapped for ``{name}``,
    walking from the right so literal prefixes are left alone.
    """
    if not path_params:
        return path

    pending = list(path_params.items())
    segments = path.split("/")
    for index in range(len(segments) - 1, -1, -1):
        if not pending:
            break
        name, value = pending[-1]
        if segments[index] == str(value):
            segments[index] = "{" + name + "}"
            pending.pop()
    return "/".join(segments)
