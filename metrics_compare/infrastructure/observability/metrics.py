"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

comparison_requests = Counter(
    "comparison_requests_total",
    "Total number of comparison requests",
)

comparison_requests_failed = Counter(
    "comparison_requests_failed_total",
    "Total number of comparison requests failed",
    ["error_code"],
)

upstream_fallback_queries = Counter(
    "upstream_fallback_queries_total",
    "Total number of queries retried on the fallback source",
    ["query_kind"],
)

upstream_query_duration_seconds = Histogram(
    "upstream_query_duration_seconds",
    "Duration of upstream queries in seconds",
    ["query_kind"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30],
)

s3_read_mb = Histogram(
    "s3_read_mb",
    "Amount of data read from S3 in MB",
    buckets=[0.1, 1, 10, 100, 1000],
)
