"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission metrics
admission_decisions = Counter(
    'admission_decisions_total',
    'Admission decisions by verdict and classification',
    ['verdict', 'classification']  # admit/reject, add/removed_previous/removed_random/<error>
)

admission_latency = Histogram(
    'admission_decide_latency_seconds',
    'Time spent deciding a redemption',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Commit metrics
commit_results = Counter(
    'commit_results_total',
    'Two-phase commit results',
    ['result']  # installed, failed, partial, unrecorded
)

partial_commits = Counter(
    'partial_commits_total',
    'Evictions whose install half failed (channel left one emote short)'
)

# Provider metrics
provider_call_latency = Histogram(
    'provider_call_latency_seconds',
    'Emote provider call latency',
    ['operation'],  # fetch_pool, fetch_item, evict, install
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

provider_call_errors = Counter(
    'provider_call_errors_total',
    'Emote provider call failures',
    ['operation', 'kind']  # kind: error, timeout
)

# Lock metrics
tenant_lock_wait = Histogram(
    'tenant_lock_wait_seconds',
    'Time spent waiting for the per-channel lock',
    buckets=[0.001, 0.01, 0.1, 0.5, 1.0, 5.0, 30.0]
)

tenant_lock_timeouts = Counter(
    'tenant_lock_timeouts_total',
    'Per-channel lock acquisitions that timed out'
)

# Redemption metrics
redemptions = Counter(
    'redemptions_total',
    'Redemptions processed',
    ['state']  # installed, rejected, failed
)

notifier_errors = Counter(
    'notifier_errors_total',
    'Chat/upstream notification failures',
    ['target']  # chat, upstream
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_decision(admitted: bool, classification: str):
    verdict = "admit" if admitted else "reject"
    admission_decisions.labels(verdict=verdict, classification=classification).inc()


def record_commit(result: str):
    """Result: installed, failed, partial, unrecorded"""
    commit_results.labels(result=result).inc()
    if result == "partial":
        partial_commits.inc()


def record_provider_error(operation: str, timeout: bool):
    kind = "timeout" if timeout else "error"
    provider_call_errors.labels(operation=operation, kind=kind).inc()


def record_redemption(state: str):
    redemptions.labels(state=state).inc()


def record_notifier_error(target: str):
    notifier_errors.labels(target=target).inc()
