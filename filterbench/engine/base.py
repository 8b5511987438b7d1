"""Engine control facade.

Defines the narrow interface the harness uses to drive a filtering
engine. The engine applies work off the calling thread; ``filter`` and
``clear`` return immediately and their effects are only guaranteed to
be visible after ``when_idle`` resolves.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import numpy as np

from ..config import EngineOptions
from ..datasets import Dataset
from ..protocol import Command


@dataclass(frozen=True)
class IndexStatus:
    """Acknowledgement for a completed index build."""

    dim: str
    ms: float
    bytes: int


@dataclass
class ShardMetrics:
    """Background reclaim counters for one reclaim cycle."""

    flushes: int = 0
    evictions: int = 0
    bins: int = 0
    rows: int = 0


@dataclass
class ShardSample:
    """One reclaim cycle observed while shard profiling is enabled."""

    dim: int
    delta: int  # +1 rows entering the active set, -1 rows leaving it
    rows: int
    copy_ms: float = 0.0
    metrics: ShardMetrics | None = field(default_factory=ShardMetrics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dim": self.dim,
            "delta": self.delta,
            "rows": self.rows,
            "copyMs": self.copy_ms,
            "metrics": None if self.metrics is None else {
                "flushes": self.metrics.flushes,
                "evictions": self.metrics.evictions,
                "bins": self.metrics.bins,
                "rows": self.metrics.rows,
            },
        }


@runtime_checkable
class DimensionHandle(Protocol):
    """Handle on one engine dimension."""

    @property
    def name(self) -> str:
        ...

    def filter(self, value_range: tuple[float, float]) -> None:
        """Restrict the dimension to ``[lo, hi)``. Does not wait for completion."""
        ...

    def clear(self) -> None:
        """Drop the dimension's filter. Does not wait for completion."""
        ...


@runtime_checkable
class EngineHandle(Protocol):
    """A live engine instance owned by exactly one driver."""

    async def dimension(self, name: str) -> DimensionHandle:
        """Resolve a dimension by name once ingest has completed."""
        ...

    async def build_index(self, name: str) -> IndexStatus:
        """Build the index for ``name`` and wait for its acknowledgement."""
        ...

    def send(self, command: Command) -> None:
        """Dispatch a raw protocol command. Does not wait for completion."""
        ...

    async def when_idle(self, timeout: float | None = None) -> None:
        """Wait until every issued command and reclaim cycle has settled.

        Raises:
            IdleTimeout: If the engine does not settle within ``timeout``.
        """
        ...

    def active_count(self) -> int:
        ...

    def histogram(self, name: str) -> np.ndarray:
        ...

    def consume_shard_profile(self) -> list[ShardSample]:
        """Return and reset the shard samples recorded since the last call."""
        ...

    def dispose(self) -> None:
        """Release engine resources. Later calls raise ``HandleClosed``."""
        ...


EngineFactory = Callable[[Dataset, EngineOptions], EngineHandle]
