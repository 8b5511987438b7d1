"""Benchmark configuration.

Environment variables (read by ``BenchConfig.from_env``):
    BENCH_ROWS: Rows to generate (default: 100000)
    BENCH_DIMS: Dimensions to generate (default: 6)
    BENCH_MIN: Lower bound of generated values (default: 0)
    BENCH_MAX: Upper bound of generated values, exclusive (default: 1000)
    BENCH_LO_FRACTION: Filter window start as a fraction of the range (default: 0.25)
    BENCH_HI_FRACTION: Filter window end as a fraction of the range (default: 0.75)
    BENCH_COLUMNAR: "1" to ingest columnar data instead of row records
    BENCH_SCENARIO: "single" (default) or "multi"
    BENCH_OUTPUT: Report file to write (optional)
    BENCH_SEED: Seed for the dataset generator (optional, unseeded if absent)
    BENCH_BINS: Histogram bins per dimension (default: 4096)
    BENCH_IDLE_TIMEOUT: Seconds to wait for the engine to settle (default: 30)
    BENCH_HIST_MODE: Histogram update mode - "auto", "direct" or "buffered"
    BENCH_PROFILE_SHARD: "1" to collect shard flush/eviction profiles
    MICRO_ITERATIONS: Filter/clear repetitions in the micro-benchmark (default: 5)
    MICRO_HIST_MODES: Comma-separated histogram modes for the micro-benchmark
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import InvalidConfig


class ScenarioKind(Enum):
    """Which report shape a benchmark run produces."""

    SINGLE = "single"
    MULTI = "multi"


class ClearStrategy(Enum):
    """How an engine reverts a dimension's filter."""

    DELTA = "delta"  # Revert only the rows the last narrowing removed
    RECOMPUTE = "recompute"  # Rebuild the active set from an unfiltered baseline


class HistogramMode(Enum):
    """How histogram counts are updated after a filter change."""

    AUTO = "auto"
    DIRECT = "direct"
    BUFFERED = "buffered"


def clamp_fraction(value: float) -> float:
    if not math.isfinite(value) or value < 0:
        return 0.0
    if value > 1:
        return 1.0
    return value


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "") == "1"


@dataclass
class EngineOptions:
    """Options passed to an engine factory on ``create``."""

    bins: int = 4096
    clear_strategy: ClearStrategy = ClearStrategy.DELTA
    histogram_mode: HistogramMode = HistogramMode.AUTO
    # Buffered histogram updates touching more rows than this trigger a flush
    shard_flush_rows: int = 32_768
    # Buffered shards kept resident before the oldest is evicted
    max_resident_shards: int = 4
    profile_shards: bool = False

    def __post_init__(self) -> None:
        if self.bins <= 0:
            raise InvalidConfig("bins must be positive", bins=self.bins)
        if self.shard_flush_rows <= 0:
            raise InvalidConfig(
                "shard_flush_rows must be positive",
                shard_flush_rows=self.shard_flush_rows,
            )
        if self.max_resident_shards < 0:
            raise InvalidConfig(
                "max_resident_shards must not be negative",
                max_resident_shards=self.max_resident_shards,
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineOptions:
        return cls(
            bins=int(data.get("bins", 4096)),
            clear_strategy=ClearStrategy(data.get("clear_strategy", "delta")),
            histogram_mode=HistogramMode(data.get("histogram_mode", "auto")),
            shard_flush_rows=int(data.get("shard_flush_rows", 32_768)),
            max_resident_shards=int(data.get("max_resident_shards", 4)),
            profile_shards=bool(data.get("profile_shards", False)),
        )


@dataclass
class BenchConfig:
    """Configuration for a single benchmark run."""

    rows: int = 100_000
    dimensions: int = 6
    range_min: float = 0.0
    range_max: float = 1000.0
    lo_fraction: float = 0.25
    hi_fraction: float = 0.75
    columnar: bool = False
    scenario: ScenarioKind = ScenarioKind.SINGLE
    output: Path | None = None
    seed: int | None = None
    bins: int = 4096
    idle_timeout: float = 30.0
    histogram_mode: HistogramMode = HistogramMode.AUTO
    profile_shards: bool = False

    # Histogram micro-benchmark
    iterations: int = 5
    histogram_modes: list[HistogramMode] = field(
        default_factory=lambda: [HistogramMode.DIRECT, HistogramMode.BUFFERED]
    )

    def __post_init__(self) -> None:
        if self.rows < 0 or self.dimensions < 0:
            raise InvalidConfig(
                "rows and dimensions must not be negative",
                rows=self.rows,
                dimensions=self.dimensions,
            )
        if self.range_max <= self.range_min:
            raise InvalidConfig(
                "range_max must be greater than range_min",
                range_min=self.range_min,
                range_max=self.range_max,
            )
        if self.idle_timeout <= 0:
            raise InvalidConfig("idle_timeout must be positive", idle_timeout=self.idle_timeout)
        self.lo_fraction = clamp_fraction(self.lo_fraction)
        self.hi_fraction = clamp_fraction(self.hi_fraction)
        self.iterations = max(1, self.iterations)

    @property
    def filter_window(self) -> tuple[float, float]:
        """Ordered (lo, hi) fractions of the value range to filter on."""
        return (
            min(self.lo_fraction, self.hi_fraction),
            max(self.lo_fraction, self.hi_fraction),
        )

    def value_at(self, fraction: float) -> float:
        return self.range_min + (self.range_max - self.range_min) * fraction

    def engine_options(self, **overrides: Any) -> EngineOptions:
        options = {
            "bins": self.bins,
            "histogram_mode": self.histogram_mode,
            "profile_shards": self.profile_shards,
        }
        options.update(overrides)
        return EngineOptions(**options)

    @classmethod
    def from_env(cls) -> BenchConfig:
        output = os.environ.get("BENCH_OUTPUT")
        seed = os.environ.get("BENCH_SEED")
        modes = os.environ.get("MICRO_HIST_MODES", "direct,buffered")
        try:
            return cls(
                rows=int(os.environ.get("BENCH_ROWS", "100000")),
                dimensions=int(os.environ.get("BENCH_DIMS", "6")),
                range_min=float(os.environ.get("BENCH_MIN", "0")),
                range_max=float(os.environ.get("BENCH_MAX", "1000")),
                lo_fraction=float(os.environ.get("BENCH_LO_FRACTION", "0.25")),
                hi_fraction=float(os.environ.get("BENCH_HI_FRACTION", "0.75")),
                columnar=_env_flag("BENCH_COLUMNAR"),
                scenario=ScenarioKind(os.environ.get("BENCH_SCENARIO", "single")),
                output=Path(output) if output else None,
                seed=int(seed) if seed else None,
                bins=int(os.environ.get("BENCH_BINS", "4096")),
                idle_timeout=float(os.environ.get("BENCH_IDLE_TIMEOUT", "30")),
                histogram_mode=HistogramMode(os.environ.get("BENCH_HIST_MODE", "auto")),
                profile_shards=_env_flag("BENCH_PROFILE_SHARD"),
                iterations=int(os.environ.get("MICRO_ITERATIONS", "5")),
                histogram_modes=[
                    HistogramMode(m.strip()) for m in modes.split(",") if m.strip()
                ],
            )
        except ValueError as e:
            if isinstance(e, InvalidConfig):
                raise
            raise InvalidConfig(f"Invalid benchmark environment: {e}") from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchConfig:
        output = data.get("output")
        try:
            return cls(
                rows=int(data.get("rows", 100_000)),
                dimensions=int(data.get("dimensions", 6)),
                range_min=float(data.get("range_min", 0.0)),
                range_max=float(data.get("range_max", 1000.0)),
                lo_fraction=float(data.get("lo_fraction", 0.25)),
                hi_fraction=float(data.get("hi_fraction", 0.75)),
                columnar=bool(data.get("columnar", False)),
                scenario=ScenarioKind(data.get("scenario", "single")),
                output=Path(output) if output else None,
                seed=data.get("seed"),
                bins=int(data.get("bins", 4096)),
                idle_timeout=float(data.get("idle_timeout", 30.0)),
                histogram_mode=HistogramMode(data.get("histogram_mode", "auto")),
                profile_shards=bool(data.get("profile_shards", False)),
                iterations=int(data.get("iterations", 5)),
                histogram_modes=[
                    HistogramMode(m)
                    for m in data.get("histogram_modes", ["direct", "buffered"])
                ],
            )
        except ValueError as e:
            if isinstance(e, InvalidConfig):
                raise
            raise InvalidConfig(f"Invalid benchmark configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> BenchConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)


@dataclass
class SuiteConfig:
    """Configuration for a full suite run."""

    reports_dir: Path = field(default_factory=lambda: Path("reports"))
    summary_path: Path = field(default_factory=lambda: Path("reports-summary.json"))
    step_timeout_seconds: float = 1800.0
    baseline_window: int = 6
    multi_category: str = "multi-simd-profile"
    # Raw step definitions; None selects the built-in suite
    steps: list[dict[str, Any]] | None = None

    def __post_init__(self) -> None:
        if self.baseline_window < 0:
            raise InvalidConfig(
                "baseline_window must not be negative",
                baseline_window=self.baseline_window,
            )
        if self.step_timeout_seconds <= 0:
            raise InvalidConfig(
                "step_timeout_seconds must be positive",
                step_timeout_seconds=self.step_timeout_seconds,
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SuiteConfig:
        return cls(
            reports_dir=Path(data.get("reports_dir", "reports")),
            summary_path=Path(data.get("summary_path", "reports-summary.json")),
            step_timeout_seconds=float(data.get("step_timeout_seconds", 1800.0)),
            baseline_window=int(data.get("baseline_window", 6)),
            multi_category=data.get("multi_category", "multi-simd-profile"),
            steps=data.get("steps"),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> SuiteConfig:
        """Load suite configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)
