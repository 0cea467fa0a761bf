from __future__ import annotations

from prometheus_client import Counter, Histogram
from dapi.prom import REGISTRY

from adapters.metrics.base import BatchOutcome, Metrics

# -----------------------------------------------------------------------------
# Statement metrics
# -----------------------------------------------------------------------------
statement_duration_ms = Histogram(
    "statement_duration_ms",
    "Duration (ms) of each executed statement",
    ["kind"],
    buckets=(1, 2, 5, 10, 20, 50, 100, 200, 500, 1000, 2000, 5000),
    registry=REGISTRY,
)

statements_total = Counter(
    "statements_total",
    "Count of executed statements labeled by kind and ok",
    ["kind", "ok"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# HTTP metrics (recorded by the app middleware)
# -----------------------------------------------------------------------------
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests labeled by route name, method and status",
    ["route", "method", "status"],
    registry=REGISTRY,
)

http_request_duration_ms = Histogram(
    "http_request_duration_ms",
    "HTTP request latency (ms) by route name",
    ["route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
    registry=REGISTRY,
)


def observe_http(*, route: str, method: str, status: int, dt_ms: float) -> None:
    http_requests_total.labels(route=route, method=method, status=str(status)).inc()
    http_request_duration_ms.labels(route=route, method=method).observe(float(dt_ms))


# -----------------------------------------------------------------------------
# Batch (transaction endpoint) metrics
# -----------------------------------------------------------------------------
batches_total = Counter(
    "batches_total",
    "Count of transaction batches labeled by outcome and reason",
    ["outcome", "reason"],
    registry=REGISTRY,
)

batch_size = Histogram(
    "batch_size",
    "Number of sub-requests per transaction batch",
    buckets=(1, 2, 5, 10, 20, 50, 100),
    registry=REGISTRY,
)


class PrometheusMetrics(Metrics):
    def observe_statement_ms(self, *, kind: str, dt_ms: float) -> None:
        statement_duration_ms.labels(kind=kind).observe(float(dt_ms))

    def inc_statement(self, *, kind: str, ok: bool) -> None:
        statements_total.labels(kind=kind, ok=("true" if ok else "false")).inc()

    def inc_batch(self, *, outcome: BatchOutcome, reason: str) -> None:
        batches_total.labels(outcome=outcome, reason=str(reason)).inc()

    def observe_batch_size(self, *, size: int) -> None:
        batch_size.observe(size)


# -----------------------------------------------------------------------------
# Label priming to keep /metrics stable
# -----------------------------------------------------------------------------
for kind in ("insert", "update", "delete", "select"):
    for ok in ("true", "false"):
        statements_total.labels(kind=kind, ok=ok).inc(0)

batches_total.labels(outcome="committed", reason="ok").inc(0)
for reason in (
    "step_failed",
    "unknown_path",
    "commit_failed",
    "batch_timeout",
    "error",
):
    batches_total.labels(outcome="rolled_back", reason=reason).inc(0)
