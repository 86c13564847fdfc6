"""Prometheus metrics for the store lifecycle."""

from prometheus_client import Counter, Gauge

from models import StoreState

STORES_CREATED = Counter(
    "store_platform_stores_created_total",
    "Total stores created",
)
STORES_DELETED = Counter(
    "store_platform_stores_deleted_total",
    "Total stores deleted",
)
PROVISION_FAILURES = Counter(
    "store_platform_provisioning_failures_total",
    "Total provisioning failures",
    ["stage"],
)
STORES_TOTAL = Gauge(
    "store_platform_stores_total",
    "Current total stores",
    ["state"],
)


def update_gauges(counts: dict[str, int]) -> None:
    for state in StoreState:
        STORES_TOTAL.labels(state=state.value).set(counts.get(state.value, 0))
