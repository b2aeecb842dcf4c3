"""Prometheus metric inventory.

Every metric the service exposes is declared here; the modules that own
the behavior import and increment them.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Marketplace metrics
# ---------------------------------------------------------------------------

ENROLLMENTS_CREATED = Counter(
    "enrollments_created_total",
    "Enrollments successfully created",
)

DUPLICATE_ENROLLMENTS = Counter(
    "enrollments_duplicate_total",
    "Enrollment attempts rejected by the (user, course) uniqueness rule",
)

REVIEWS_CREATED = Counter(
    "reviews_created_total",
    "Course reviews created",
)

LESSONS_COMPLETED = Counter(
    "lessons_completed_total",
    "Lesson progress updates that marked a lesson completed",
)

TOKEN_BLACKLIST_CHECKS = Counter(
    "token_blacklist_checks_total",
    "Token blacklist lookups by result",
    ["result"],  # "revoked" or "valid"
)
