"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission metrics
join_attempts = Counter(
    'eventdesk_join_attempts_total',
    'Join attempts by outcome',
    ['outcome']  # registered, waitlisted, already_registered, rate_limited, ...
)

join_latency = Histogram(
    'eventdesk_join_latency_seconds',
    'Join request latency',
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

cancellations = Counter(
    'eventdesk_cancellations_total',
    'Cancellation requests by outcome',
    ['outcome']  # cancelled, not_found
)

# Ledger metrics
ledger_operations = Counter(
    'eventdesk_ledger_operations_total',
    'Capacity ledger operations',
    ['operation', 'result']  # reserve/release, ok/full/duplicate
)

ledger_integrity_violations = Counter(
    'eventdesk_ledger_integrity_violations_total',
    'Integrity violations detected by the ledger, store or promoter',
    ['kind']
)

# Waitlist metrics
waitlist_promotions = Counter(
    'eventdesk_waitlist_promotions_total',
    'Waitlisted registrations promoted to a confirmed seat'
)

# Check-in metrics
checkin_attempts = Counter(
    'eventdesk_checkin_attempts_total',
    'Check-in verification attempts by outcome',
    ['outcome', 'method']
)

# Scan session metrics
scan_transitions = Counter(
    'eventdesk_scan_session_transitions_total',
    'Scan session state transitions',
    ['state']
)

notification_failures = Counter(
    'eventdesk_notification_failures_total',
    'Notification subscriber failures',
    ['kind']
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


def record_join(outcome: str):
    join_attempts.labels(outcome=outcome).inc()


def record_cancel(outcome: str):
    cancellations.labels(outcome=outcome).inc()


def record_ledger_operation(operation: str, result: str):
    """Record ledger mutation. Result: ok, full, duplicate"""
    ledger_operations.labels(operation=operation, result=result).inc()


def record_integrity_violation(kind: str):
    ledger_integrity_violations.labels(kind=kind).inc()


def record_checkin(outcome: str, method: str):
    checkin_attempts.labels(outcome=outcome, method=method).inc()


def record_scan_state(state: str):
    scan_transitions.labels(state=state).inc()
