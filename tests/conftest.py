"""Pytest fixtures for filterbench tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from filterbench.config import BenchConfig, SuiteConfig
from filterbench.datasets import ColumnarData, RowData, generate


@pytest.fixture
def columnar_data() -> ColumnarData:
    """Small seeded columnar dataset."""
    return generate(2_000, 3, 0, 1000, columnar=True, seed=7)


@pytest.fixture
def row_data() -> RowData:
    """The same values as ``columnar_data`` in row form."""
    return generate(2_000, 3, 0, 1000, columnar=False, seed=7)


@pytest.fixture
def bench_config() -> BenchConfig:
    """Benchmark config small enough for unit tests."""
    return BenchConfig(rows=5_000, dimensions=4, seed=42, idle_timeout=10.0, iterations=2)


@pytest.fixture
def suite_config(tmp_path: Path) -> SuiteConfig:
    return SuiteConfig(
        reports_dir=tmp_path / "reports",
        summary_path=tmp_path / "reports-summary.json",
        step_timeout_seconds=5.0,
    )


def baseline_payload(rows: int = 100_000, columnar: bool = False, ms: float = 1.0) -> dict[str, Any]:
    return {
        "scenario": "single",
        "timestamp": "2026-01-01T00:00:00+00:00",
        "rows": rows,
        "dimensions": 6,
        "columnar": columnar,
        "ingestMs": ms,
        "index": {"ms": ms * 2, "bytes": 800},
        "filter": {"ms": ms * 3, "activeCount": rows // 2},
        "clearMs": ms * 4,
        "clearActiveCount": rows,
    }


def multi_payload(rows: int = 1_000_000, shard: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "scenario": "multi",
        "rows": rows,
        "dimensions": 6,
        "columnar": True,
        "ingestMs": 50.0,
        "filters": [
            {"dim": "dim0", "ms": 12.34, "activeCount": 700},
            {"dim": "dim1", "ms": 4.5, "activeCount": 250},
        ],
        "clears": [
            {"dim": "dim0", "ms": 3.21, "activeCount": 1000},
            {"dim": "dim1", "ms": 2.0, "activeCount": 700},
        ],
    }
    if shard:
        data["shardSummary"] = {
            "totalFlushes": 9,
            "totalEvictions": 1,
            "totalRows": 12_345,
            "totalBins": 100,
        }
    return data


def write_report(directory: Path, name: str, payload: Any) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(json.dumps(payload))
    return path
