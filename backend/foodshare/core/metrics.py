"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
claim_attempts = Counter(
    'foodshare_claim_attempts_total',
    'Total claim attempts',
    ['result']  # success, not_found, forbidden, expired, exhausted, duplicate_claim, conflict
)

claim_latency = Histogram(
    'foodshare_claim_latency_seconds',
    'Claim latency including lock wait',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

resources_exhausted = Counter(
    'foodshare_resources_exhausted_total',
    'Resources whose remaining count reached zero'
)

# Membership workflow metrics
workflow_transitions = Counter(
    'foodshare_workflow_transitions_total',
    'Membership workflow operations',
    ['operation', 'result']  # request_join/approve/reject/remove x ok/noop/error code
)

# Notifier metrics
notifications_created = Counter(
    'foodshare_notifications_created_total',
    'Notification rows created by the notifier',
    ['kind']
)

# Concurrency metrics
optimistic_retries = Counter(
    'foodshare_optimistic_retries_total',
    'Retries caused by optimistic version conflicts'
)

lock_timeouts = Counter(
    'foodshare_lock_timeouts_total',
    'Per-key lock acquisitions that timed out',
    ['strategy']
)

lock_wait = Histogram(
    'foodshare_lock_wait_seconds',
    'Time spent waiting for a per-key lock',
    ['strategy'],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# Cache metrics
cache_operations = Counter(
    'foodshare_cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'foodshare_redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_claim_attempt(result: str):
    """Record claim attempt by result code."""
    claim_attempts.labels(result=result).inc()


def record_transition(operation: str, result: str):
    workflow_transitions.labels(operation=operation, result=result).inc()


def record_notifications(kind: str, count: int):
    if count:
        notifications_created.labels(kind=kind).inc(count)


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
