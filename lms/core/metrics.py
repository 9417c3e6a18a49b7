"""Application metrics using the Prometheus client library.

All metrics are defined here so the service has one inventory of what it
measures.  Other modules import the specific metric and increment/observe
it at the point of action.
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
# Engine metrics
# ---------------------------------------------------------------------------

LESSON_TRANSITIONS = Counter(
    "lesson_transitions_total",
    "Lesson progress transitions recorded",
    ["transition"],  # "started", "completed", "noop"
)

RECALCULATIONS = Counter(
    "enrollment_recalculations_total",
    "Enrollment aggregation passes by outcome",
    ["result"],  # "updated", "unchanged", "missing", "failed"
)

AGGREGATION_CONFLICTS = Counter(
    "aggregation_conflicts_total",
    "Optimistic-lock conflicts hit while writing an enrollment",
)

RECALCULATION_BATCH_SIZE = Histogram(
    "enrollment_recalculation_batch_size",
    "Distinct enrollments per recalculation call",
    buckets=[1, 2, 5, 10, 50, 100, 500, 1000, 5000, 10000],
)

QUIZ_ATTEMPTS = Counter(
    "quiz_attempts_total",
    "Graded quiz attempts",
    ["passed"],  # "true" or "false"
)

QUIZ_REJECTIONS = Counter(
    "quiz_submissions_rejected_total",
    "Quiz submissions rejected before grading",
    ["reason"],  # error code
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
