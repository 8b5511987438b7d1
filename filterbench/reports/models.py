"""Report shapes produced by benchmark runs.

Reports form a closed variant: ``BaselineReport`` (one filter on one
dimension) or ``MultiFilterReport`` (a chain of filters and clears
across dimensions, optionally with a shard summary). ``decode_report``
detects the shape once at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Union

from ..engine.base import ShardSample
from ..errors import ReportFormatError

REPORT_CATEGORIES = (
    "baseline",
    "multi-simd-profile",
    "multi-rows",
    "multi-columnar",
    "micro-histogram",
)


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class DimensionShardTotals:
    dim: str
    flushes: int = 0
    evictions: int = 0
    bins: int = 0
    rows: int = 0


@dataclass(frozen=True)
class ShardSummary:
    """Background reclaim activity observed during a run."""

    total_flushes: int = 0
    total_evictions: int = 0
    total_rows: int = 0
    total_bins: int = 0
    per_dimension: tuple[DimensionShardTotals, ...] = ()

    @classmethod
    def from_profiles(
        cls, profiles: list[tuple[str, list[ShardSample]]]
    ) -> ShardSummary:
        """Sum shard samples recorded per dimension.

        Samples without metrics are skipped.
        """
        per_dim: dict[str, list[int]] = {}
        for dim, samples in profiles:
            totals = per_dim.setdefault(dim, [0, 0, 0, 0])
            for sample in samples:
                if sample.metrics is None:
                    continue
                totals[0] += sample.metrics.flushes
                totals[1] += sample.metrics.evictions
                totals[2] += sample.metrics.bins
                totals[3] += sample.metrics.rows
        dims = tuple(
            DimensionShardTotals(dim=d, flushes=t[0], evictions=t[1], bins=t[2], rows=t[3])
            for d, t in per_dim.items()
        )
        return cls(
            total_flushes=sum(d.flushes for d in dims),
            total_evictions=sum(d.evictions for d in dims),
            total_rows=sum(d.rows for d in dims),
            total_bins=sum(d.bins for d in dims),
            per_dimension=dims,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFlushes": self.total_flushes,
            "totalEvictions": self.total_evictions,
            "totalRows": self.total_rows,
            "totalBins": self.total_bins,
            "perDimension": [
                {
                    "dim": d.dim,
                    "flushes": d.flushes,
                    "evictions": d.evictions,
                    "bins": d.bins,
                    "rows": d.rows,
                }
                for d in self.per_dimension
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShardSummary:
        return cls(
            total_flushes=int(data.get("totalFlushes", 0)),
            total_evictions=int(data.get("totalEvictions", 0)),
            total_rows=int(data.get("totalRows", 0)),
            total_bins=int(data.get("totalBins", 0)),
            per_dimension=tuple(
                DimensionShardTotals(
                    dim=str(d["dim"]),
                    flushes=int(d.get("flushes", 0)),
                    evictions=int(d.get("evictions", 0)),
                    bins=int(d.get("bins", 0)),
                    rows=int(d.get("rows", 0)),
                )
                for d in data.get("perDimension", [])
            ),
        )


@dataclass(frozen=True)
class ChainEntry:
    """One step of a multi-filter chain."""

    dim: str
    ms: float
    active_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"dim": self.dim, "ms": self.ms, "activeCount": self.active_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChainEntry:
        return cls(
            dim=str(data["dim"]),
            ms=float(data["ms"]),
            active_count=int(data.get("activeCount", 0)),
        )


@dataclass(frozen=True)
class IndexEntry:
    dim: str
    ms: float
    bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"dim": self.dim, "ms": self.ms, "bytes": self.bytes}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexEntry:
        return cls(dim=str(data["dim"]), ms=float(data["ms"]), bytes=int(data.get("bytes", 0)))


@dataclass(frozen=True)
class BaselineReport:
    """Single-filter run: ingest, index, one filter, one clear."""

    rows: int
    dimensions: int
    columnar: bool
    ingest_ms: float
    index_ms: float
    filter_ms: float
    clear_ms: float
    index_bytes: int = 0
    filter_active_count: int = 0
    clear_active_count: int = 0
    range_min: float = 0.0
    range_max: float = 1000.0
    filter_fractions: tuple[float, float] = (0.25, 0.75)
    timestamp: str = field(default_factory=utc_timestamp)

    scenario = "single"

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "timestamp": self.timestamp,
            "rows": self.rows,
            "dimensions": self.dimensions,
            "columnar": self.columnar,
            "range": {"min": self.range_min, "max": self.range_max},
            "filterFractions": {"lo": self.filter_fractions[0], "hi": self.filter_fractions[1]},
            "ingestMs": self.ingest_ms,
            "index": {"ms": self.index_ms, "bytes": self.index_bytes},
            "filter": {"ms": self.filter_ms, "activeCount": self.filter_active_count},
            "clearMs": self.clear_ms,
            "clearActiveCount": self.clear_active_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaselineReport:
        value_range = data.get("range") or {}
        fractions = data.get("filterFractions") or {}
        return cls(
            rows=int(data["rows"]),
            dimensions=int(data["dimensions"]),
            columnar=bool(data.get("columnar", False)),
            ingest_ms=float(data["ingestMs"]),
            index_ms=float(data["index"]["ms"]),
            index_bytes=int(data["index"].get("bytes", 0)),
            filter_ms=float(data["filter"]["ms"]),
            filter_active_count=int(data["filter"].get("activeCount", 0)),
            clear_ms=float(data["clearMs"]),
            clear_active_count=int(data.get("clearActiveCount", 0)),
            range_min=float(value_range.get("min", 0.0)),
            range_max=float(value_range.get("max", 1000.0)),
            filter_fractions=(
                float(fractions.get("lo", 0.25)),
                float(fractions.get("hi", 0.75)),
            ),
            timestamp=str(data.get("timestamp", "")),
        )


@dataclass(frozen=True)
class MultiFilterReport:
    """Multi-filter chain run across several dimensions."""

    rows: int
    dimensions: int
    ingest_ms: float
    filters: tuple[ChainEntry, ...]
    clears: tuple[ChainEntry, ...]
    columnar: bool = False
    index: tuple[IndexEntry, ...] = ()
    shard_summary: ShardSummary | None = None
    range_min: float = 0.0
    range_max: float = 1000.0
    timestamp: str = field(default_factory=utc_timestamp)

    scenario = "multi"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "scenario": self.scenario,
            "timestamp": self.timestamp,
            "rows": self.rows,
            "dimensions": self.dimensions,
            "columnar": self.columnar,
            "range": {"min": self.range_min, "max": self.range_max},
            "ingestMs": self.ingest_ms,
            "index": [e.to_dict() for e in self.index],
            "filters": [e.to_dict() for e in self.filters],
            "clears": [e.to_dict() for e in self.clears],
        }
        if self.shard_summary is not None:
            data["shardSummary"] = self.shard_summary.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MultiFilterReport:
        value_range = data.get("range") or {}
        index = data.get("index")
        shard = data.get("shardSummary")
        return cls(
            rows=int(data["rows"]),
            dimensions=int(data["dimensions"]),
            columnar=bool(data.get("columnar", False)),
            ingest_ms=float(data["ingestMs"]),
            index=tuple(IndexEntry.from_dict(e) for e in index) if isinstance(index, list) else (),
            filters=tuple(ChainEntry.from_dict(e) for e in data["filters"]),
            clears=tuple(ChainEntry.from_dict(e) for e in data["clears"]),
            shard_summary=ShardSummary.from_dict(shard) if shard else None,
            range_min=float(value_range.get("min", 0.0)),
            range_max=float(value_range.get("max", 1000.0)),
            timestamp=str(data.get("timestamp", "")),
        )


Report = Union[BaselineReport, MultiFilterReport]


def decode_report(data: Any) -> Report:
    """Detect a report's shape and decode it.

    Multi-filter reports carry ``filters``/``clears`` chains; baseline
    reports carry scalar ``clearMs`` with nested ``index``/``filter``.

    Raises:
        ReportFormatError: If the data matches neither shape.
    """
    if not isinstance(data, dict):
        raise ReportFormatError("Report must be a JSON object")
    try:
        if isinstance(data.get("filters"), list) and isinstance(data.get("clears"), list):
            return MultiFilterReport.from_dict(data)
        if "clearMs" in data and isinstance(data.get("filter"), dict):
            return BaselineReport.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ReportFormatError(f"Malformed report: {e}") from e
    raise ReportFormatError(
        "Unrecognised report shape", keys=",".join(sorted(map(str, data)))
    )
