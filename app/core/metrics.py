"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behavior import the metric and increment it at the point of action.

HTTP metrics are filled in by MetricsMiddleware.  The enrollment metrics
are filled in by the services:

  enrollment_operations_total{operation, outcome}
      One increment per public admission operation.  `outcome` is "ok" or
      the ErrorKind value, so a dashboard can split refusals by cause:
        sum by (outcome) (rate(enrollment_operations_total{operation="enroll"}[5m]))

  waitlist_promotions_total{outcome}
      "promoted", "empty", "no_spot", "failed", "skipped" (a candidate
      deactivated under the advance-to-next-candidate policy).

  transfer_compensations_total{outcome}
      "rolled_back" when the interim enrollment was undone,
      "failed" when the undo itself failed and the student is left
      enrolled in both courses.  Any non-zero rate of "failed" needs a
      human.

Course ids are deliberately not labels: label cardinality would grow
with the catalog.
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
# Admission control and waitlist metrics
# ---------------------------------------------------------------------------

ENROLLMENT_OPERATIONS = Counter(
    "enrollment_operations_total",
    "Admission control operations by outcome",
    ["operation", "outcome"],  # enroll|unenroll|transfer ; ok|<error kind>
)

WAITLIST_PROMOTIONS = Counter(
    "waitlist_promotions_total",
    "Waitlist promotion attempts by outcome",
    ["outcome"],
)

TRANSFER_COMPENSATIONS = Counter(
    "transfer_compensations_total",
    "Compensating unenrollments run by transfers",
    ["outcome"],  # rolled_back|failed
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
