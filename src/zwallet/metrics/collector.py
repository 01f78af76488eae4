"""Metrics collector — Prometheus counters and histograms for wallet operations.

- ``zwallet_sync_batches_total`` counter-vec (scanned, scan_failed, empty)
- ``zwallet_blocks_scanned_total`` counter
- ``zwallet_sync_height`` gauge
- ``zwallet_submissions_total`` counter-vec (accepted, rejected, invalid)
- ``zwallet_operation_wait_seconds`` histogram-vec (succeeded, failed, timeout, cancelled)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "zwallet"

BATCH_OUTCOMES = ("scanned", "scan_failed", "empty")
SUBMISSION_OUTCOMES = ("accepted", "rejected", "invalid")
WAIT_OUTCOMES = ("succeeded", "failed", "timeout", "cancelled")


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`WalletMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, doc, labels, registry=self._registry)


class WalletMetrics:
    """Sync and submission metrics.

    Every engine accepts ``metrics=None``; pass an instance to record.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._batches = self._collector.counter(
            f"{_PREFIX}_sync_batches",
            "Sync batches processed, by outcome",
            ("outcome",),
        )
        self._blocks = self._collector.counter(
            f"{_PREFIX}_blocks_scanned",
            "Compact blocks handed to the scanner successfully",
        )
        self._height = self._collector.gauge(
            f"{_PREFIX}_sync_height",
            "Highest block height the sync loop has advanced past",
        )
        self._submissions = self._collector.counter(
            f"{_PREFIX}_submissions",
            "Payment batch submissions, by outcome",
            ("outcome",),
        )
        self._wait = self._collector.histogram(
            f"{_PREFIX}_operation_wait_seconds",
            "Time spent waiting for a submitted operation, by outcome",
            ("outcome",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._collector.registry

    def render(self) -> bytes:
        """Prometheus text exposition of the registry."""
        return generate_latest(self._collector.registry)

    # -- Sync --

    def record_batch(self, outcome: str, blocks: int = 0) -> None:
        """Count one sync batch; *blocks* are added to the scanned total on success."""
        if outcome not in BATCH_OUTCOMES:
            msg = f"Unknown batch outcome: {outcome}"
            raise ValueError(msg)
        self._batches.labels(outcome=outcome).inc()
        if outcome == "scanned" and blocks:
            self._blocks.inc(blocks)

    def set_sync_height(self, height: int) -> None:
        self._height.set(height)

    # -- Submission --

    def record_submission(self, outcome: str) -> None:
        if outcome not in SUBMISSION_OUTCOMES:
            msg = f"Unknown submission outcome: {outcome}"
            raise ValueError(msg)
        self._submissions.labels(outcome=outcome).inc()

    @contextmanager
    def track_operation_wait(self) -> Iterator[dict[str, str]]:
        """Time a wait; the caller sets ``ctx["outcome"]`` before leaving the block."""
        ctx = {"outcome": "failed"}
        start = time.monotonic()
        try:
            yield ctx
        finally:
            self._wait.labels(outcome=ctx["outcome"]).observe(time.monotonic() - start)
