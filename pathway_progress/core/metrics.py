"""Application metrics using the Prometheus client library.

All metrics are defined here: a single inventory of everything the
service measures.  Other modules import specific metrics and
increment/observe them at the point of action.

Counters only go up (use rate() in PromQL), gauges go up and down,
histograms bucket observations so Prometheus can compute percentiles.
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
# Progression engine metrics
# ---------------------------------------------------------------------------

RECOMPUTATIONS = Counter(
    "progress_recomputations_total",
    "Enrollment recomputations by trigger",
    ["trigger"],  # signal|override|assignment|manual|backfill|config|clock
)

RECOMPUTE_DURATION = Histogram(
    "progress_recompute_duration_seconds",
    "Time spent recomputing one enrollment (gating + rollup)",
    # A pathway has tens of activities; anything past 250ms means the
    # store round-trips are the bottleneck.
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

ACTIVITY_TRANSITIONS = Counter(
    "activity_transitions_total",
    "Lifecycle transitions written by the unlock resolver",
    ["from_status", "to_status"],
)

CONFIG_ANOMALIES = Counter(
    "configuration_anomalies_total",
    "Malformed gating configuration met at evaluation time (treated as locked)",
    ["kind"],
)

STATE_CONFLICTS = Counter(
    "state_conflicts_total",
    "Rejected state updates",
    ["reason"],
)

OVERRIDES_APPLIED = Counter(
    "overrides_applied_total",
    "Administrative overrides granted",
    ["override_type"],
)
