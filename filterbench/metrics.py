"""Timing samples and their statistical aggregation.

Samples are created by the benchmark runner and are read-only once
recorded. Aggregation groups samples by operation name and dataset
size and reports latency percentiles (p50, p95, p99) with the mean,
extremes and sample standard deviation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

PERCENTILES = (50, 95, 99)


@dataclass(frozen=True)
class TimingSample:
    """A single measured operation.

    ``elapsed_ms`` is None when the operation failed; ``error`` then
    holds the reason.
    """

    name: str
    dataset_size: int
    elapsed_ms: float | None
    error: str | None = None
    timestamp: float = 0.0  # time.time() when the measurement started

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "datasetSize": self.dataset_size,
            "elapsedMs": self.elapsed_ms,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class LatencyStats:
    """Latency distribution of one operation, in milliseconds."""

    count: int = 0
    mean_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    stddev_ms: float = 0.0

    @classmethod
    def from_values(cls, values: list[float]) -> LatencyStats:
        """Summarize successful timings; failed samples never reach here."""
        if not values:
            return cls()
        timings = np.asarray(values, dtype=np.float64)
        p50, p95, p99 = np.percentile(timings, PERCENTILES)
        return cls(
            count=int(timings.size),
            mean_ms=float(timings.mean()),
            p50_ms=float(p50),
            p95_ms=float(p95),
            p99_ms=float(p99),
            min_ms=float(timings.min()),
            max_ms=float(timings.max()),
            stddev_ms=float(timings.std(ddof=1)) if timings.size > 1 else 0.0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "meanMs": round(self.mean_ms, 4),
            "p50Ms": round(self.p50_ms, 4),
            "p95Ms": round(self.p95_ms, 4),
            "p99Ms": round(self.p99_ms, 4),
            "minMs": round(self.min_ms, 4),
            "maxMs": round(self.max_ms, 4),
            "stdDevMs": round(self.stddev_ms, 4),
        }


@dataclass
class OperationSummary:
    """Samples of one operation at one dataset size."""

    name: str
    dataset_size: int
    latency: LatencyStats = field(default_factory=LatencyStats)
    failures: int = 0

    @classmethod
    def from_samples(cls, samples: list[TimingSample]) -> OperationSummary:
        if not samples:
            return cls(name="", dataset_size=0)
        first = samples[0]
        timings = [s.elapsed_ms for s in samples if s.elapsed_ms is not None]
        return cls(
            name=first.name,
            dataset_size=first.dataset_size,
            latency=LatencyStats.from_values(timings),
            failures=sum(1 for s in samples if s.failed),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "datasetSize": self.dataset_size,
            "failures": self.failures,
            "latency": self.latency.to_dict(),
        }


def summarize_samples(samples: list[TimingSample]) -> list[OperationSummary]:
    """Group samples by (name, dataset_size), preserving first-seen order."""
    groups: dict[tuple[str, int], list[TimingSample]] = {}
    for sample in samples:
        groups.setdefault((sample.name, sample.dataset_size), []).append(sample)
    return [OperationSummary.from_samples(group) for group in groups.values()]
