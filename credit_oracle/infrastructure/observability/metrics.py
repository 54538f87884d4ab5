"""Prometheus metrics for monitoring sync cycles, score distribution and ledger performance"""

from prometheus_client import Counter, Histogram

from credit_oracle.domain.models import CycleResult

# Cycle metrics
cycle_counter = Counter(
    "credit_oracle_cycle_total",
    "Reconciliation cycles run",
    ["outcome"],  # completed | failed
)

cycle_duration_histogram = Histogram(
    "credit_oracle_cycle_duration_seconds",
    "Wall-clock duration of a reconciliation cycle",
    buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 300.0],
)

merchant_outcome_counter = Counter(
    "credit_oracle_merchant_outcome_total",
    "Per-merchant cycle outcomes",
    ["status"],  # written | skipped | error | dry_run
)

score_histogram = Histogram(
    "credit_oracle_score",
    "Computed credit scores",
    buckets=[350, 400, 450, 500, 550, 600, 650, 700, 750, 800, 850],
)

# Ledger metrics
ledger_latency_histogram = Histogram(
    "ledger_request_latency_seconds",
    "Ledger gateway response time",
    ["operation"],  # read | write | batch_write | authorized | balance
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

ledger_failure_counter = Counter(
    "ledger_failures_total",
    "Failed ledger gateway calls",
    ["operation"],
)

# Document store metrics
persistence_failure_counter = Counter(
    "score_persistence_failures_total",
    "Failed score saves to the side store",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_cycle(result: CycleResult) -> None:
    """Record cycle and per-merchant metrics once a cycle has finished"""
    cycle_counter.labels(outcome="completed" if result.success else "failed").inc()
    cycle_duration_histogram.observe(result.duration_seconds)

    for outcome in result.outcomes:
        merchant_outcome_counter.labels(status=outcome.status.value).inc()
        if outcome.score is not None:
            score_histogram.observe(outcome.score)
