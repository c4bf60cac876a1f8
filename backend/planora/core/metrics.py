"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation create attempts',
    ['outcome']  # confirmed, conflict, rejected, error
)

reservation_latency = Histogram(
    'reservation_create_latency_seconds',
    'Reservation create latency (pending insert + confirmation)',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

reservation_transitions = Counter(
    'reservation_transitions_total',
    'Reservation lifecycle transitions',
    ['from_status', 'to_status']
)

# Capacity metrics
capacity_rejections = Counter(
    'capacity_guard_rejections_total',
    'Atomic capacity updates that matched no row',
    ['reason']  # full, not_published
)

qr_verifications = Counter(
    'qr_verifications_total',
    'QR token verifications at the door',
    ['valid']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation_attempt(outcome: str):
    """Outcome: confirmed, conflict, rejected, error"""
    reservation_attempts.labels(outcome=outcome).inc()


def record_transition(from_status: str, to_status: str):
    reservation_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_capacity_rejection(reason: str):
    capacity_rejections.labels(reason=reason).inc()


def record_qr_verification(valid: bool):
    qr_verifications.labels(valid=str(valid).lower()).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
