from __future__ import annotations

from prometheus_client import Counter, Histogram


AUTH_FAILURES_TOTAL = Counter(
    "ecotrack_auth_failures_total",
    "Requests rejected during bearer token verification",
    ["reason"],
)

PERMISSION_DENIALS_TOTAL = Counter(
    "ecotrack_permission_denials_total",
    "Requests rejected by the permission gate",
    ["permission"],
)

RATE_LIMIT_HITS_TOTAL = Counter(
    "ecotrack_rate_limit_hits_total",
    "Requests rejected by the short-window rate limiter",
    ["operation", "window"],
)

RATE_LIMIT_STORE_ERRORS_TOTAL = Counter(
    "ecotrack_rate_limit_store_errors_total",
    "Counter-store failures that let a request through unchecked",
)

QUOTA_REJECTIONS_TOTAL = Counter(
    "ecotrack_quota_rejections_total",
    "Requests rejected because the monthly quota was exhausted",
    ["operation", "tier"],
)

QUOTA_INCREMENTS_TOTAL = Counter(
    "ecotrack_quota_increments_total",
    "Monthly usage increments by outcome",
    ["operation", "outcome"],
)

LIMITS_CACHE_TOTAL = Counter(
    "ecotrack_limits_config_cache_total",
    "Rate-limit and quota config lookups by outcome",
    ["outcome"],
)

BILL_EXTRACTION_DURATION_SECONDS = Histogram(
    "ecotrack_bill_extraction_duration_seconds",
    "Bill extraction call duration in seconds",
    ["model"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 60.0),
)

BILL_EXTRACTIONS_TOTAL = Counter(
    "ecotrack_bill_extractions_total",
    "Bill extraction attempts by outcome",
    ["model", "status"],
)

BEST_EFFORT_FAILURES_TOTAL = Counter(
    "ecotrack_best_effort_write_failures_total",
    "Secondary writes that failed without failing the request",
    ["target"],
)
