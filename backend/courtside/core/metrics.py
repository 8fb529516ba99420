"""
Metrics instrumentation for the allocation engine.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Registration metrics
registration_attempts = Counter(
    'registration_attempts_total',
    'Total registration attempts',
    ['outcome']  # confirmed, waiting, conflict, not_found
)

registration_latency = Histogram(
    'registration_latency_seconds',
    'Registration transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

cancellations = Counter(
    'cancellations_total',
    'Participant cancellations',
    ['previous_status']  # confirmed, waiting
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Waiting participants promoted to confirmed'
)

# Payment metrics
payments_expired = Counter(
    'payments_expired_total',
    'Payment obligations expired by the sweeper or the client countdown',
    ['source']  # sweeper, client
)

payment_transitions = Counter(
    'payment_transitions_total',
    'Payment obligation state transitions',
    ['status']  # pending, paid, canceled, expired, refund_required
)

gateway_errors = Counter(
    'payment_gateway_errors_total',
    'Payment gateway failures',
    ['operation']  # create_intent, get_status
)

sweep_duration = Histogram(
    'expiry_sweep_duration_seconds',
    'Duration of one expiry sweep pass',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_registration(outcome: str):
    """Record registration attempt. Outcome: confirmed, waiting, conflict, not_found"""
    registration_attempts.labels(outcome=outcome).inc()


def record_cancellation(previous_status: str):
    cancellations.labels(previous_status=previous_status).inc()


def record_promotions(count: int):
    if count:
        waitlist_promotions.inc(count)


def record_payment_transition(status: str):
    payment_transitions.labels(status=status).inc()


def record_expiry(source: str):
    payments_expired.labels(source=source).inc()


def record_gateway_error(operation: str):
    gateway_errors.labels(operation=operation).inc()
