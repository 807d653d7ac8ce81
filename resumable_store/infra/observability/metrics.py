from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram

# Labels stay low-cardinality: operation names only, never upload ids or keys
UPLOAD_OPERATIONS = Counter(
    "upload_operations_total",
    "Upload store operations by outcome",
    ["operation", "outcome"],
)

APPENDED_BYTES = Counter(
    "upload_bytes_appended_total",
    "Bytes appended to upload data objects",
)

STORAGE_LATENCY = Histogram(
    "storage_call_duration_seconds",
    "Object storage call latency in seconds",
    ["operation"],
)


def record_operation(operation: str, outcome: str, *, enabled: bool = True) -> None:
    if enabled:
        UPLOAD_OPERATIONS.labels(operation=operation, outcome=outcome).inc()


def record_appended_bytes(count: int, *, enabled: bool = True) -> None:
    if enabled and count > 0:
        APPENDED_BYTES.inc(count)


@contextmanager
def observe_storage_call(operation: str, *, enabled: bool = True) -> Iterator[None]:
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        STORAGE_LATENCY.labels(operation=operation).observe(
            time.perf_counter() - start
        )
