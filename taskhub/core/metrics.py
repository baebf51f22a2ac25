from __future__ import annotations

from prometheus_client import Counter, Histogram

MUTATIONS_TOTAL = Counter(
    "taskhub_mutations_total",
    "Committed or aborted mutations grouped by collection and operation",
    labelnames=("collection", "operation", "outcome"),
)

SYNC_WRITES_TOTAL = Counter(
    "taskhub_sync_writes_total",
    "Secondary writes derived by the consistency coordinator",
    labelnames=("kind",),
)

TRANSACTION_LATENCY_SECONDS = Histogram(
    "taskhub_transaction_latency_seconds",
    "Wall time spent inside a store transaction",
    labelnames=("operation",),
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, float("inf")),
)

QUERIES_TOTAL = Counter(
    "taskhub_queries_total",
    "List and count queries executed per collection",
    labelnames=("collection", "mode"),
)

QUERY_REJECTED_TOTAL = Counter(
    "taskhub_query_rejected_total",
    "List queries rejected before reaching the store, by offending parameter",
    labelnames=("parameter",),
)

REQUEST_ERRORS_TOTAL = Counter(
    "taskhub_request_errors_total",
    "Failed requests grouped by error category",
    labelnames=("category",),
)


def record_mutation(*, collection: str, operation: str, outcome: str, latency: float | None = None) -> None:
    MUTATIONS_TOTAL.labels(collection=collection, operation=operation, outcome=outcome).inc()
    if latency is not None:
        TRANSACTION_LATENCY_SECONDS.labels(operation=f"{collection}.{operation}").observe(max(0.0, latency))


def increment_sync_writes(*, kind: str, count: int = 1) -> None:
    if count:
        SYNC_WRITES_TOTAL.labels(kind=kind).inc(count)


def increment_query(*, collection: str, mode: str) -> None:
    QUERIES_TOTAL.labels(collection=collection, mode=mode).inc()


def increment_query_rejected(*, parameter: str) -> None:
    QUERY_REJECTED_TOTAL.labels(parameter=parameter).inc()


def increment_request_error(*, category: str) -> None:
    REQUEST_ERRORS_TOTAL.labels(category=category).inc()
