"""Summary aggregation over a directory of report files.

Keeps the most recent baseline reports plus the latest multi-filter
report and flattens them into human-readable summary rows.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import BaselineReport, MultiFilterReport, ShardSummary, decode_report
from .writer import write_json_once

logger = logging.getLogger(__name__)

DEFAULT_BASELINE_WINDOW = 6
DEFAULT_MULTI_CATEGORY = "multi-simd-profile"
CHAIN_SEPARATOR = " → "


@dataclass(frozen=True)
class SummaryRow:
    """One line of the benchmark summary."""

    label: str
    ingest: str
    report: str
    index: str | None = None
    filter: str | None = None
    filter_chain: str | None = None
    clear: str | None = None
    clear_chain: str | None = None
    shard_flushes: int | None = None
    shard_rows: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"label": self.label, "ingest": self.ingest}
        optional = {
            "index": self.index,
            "filter": self.filter,
            "filterChain": self.filter_chain,
            "clear": self.clear,
            "clearChain": self.clear_chain,
            "shardFlushes": self.shard_flushes,
            "shardRows": self.shard_rows,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        data["report"] = self.report
        return data


def format_ms(ms: float) -> str:
    return f"{ms:.2f} ms"


def format_chain(entries: Any) -> str:
    """Join ``dim:ms`` pairs in chain order."""
    return CHAIN_SEPARATOR.join(f"{e.dim}:{e.ms:.1f}ms" for e in entries)


def baseline_row(report: BaselineReport, filename: str) -> SummaryRow:
    mode = "columnar" if report.columnar else "rows"
    return SummaryRow(
        label=f"{report.rows:,} × {report.dimensions} ({mode})",
        ingest=format_ms(report.ingest_ms),
        index=format_ms(report.index_ms),
        filter=format_ms(report.filter_ms),
        clear=format_ms(report.clear_ms),
        report=filename,
    )


def multi_row(report: MultiFilterReport, filename: str) -> SummaryRow:
    shard = report.shard_summary or ShardSummary()
    return SummaryRow(
        label=f"multi {report.rows:,} × {report.dimensions} (simd)",
        ingest=format_ms(report.ingest_ms),
        filter_chain=format_chain(report.filters),
        clear_chain=format_chain(report.clears),
        shard_flushes=shard.total_flushes,
        shard_rows=shard.total_rows,
        report=filename,
    )


def _reports_with_prefix(names: list[str], category: str) -> list[str]:
    prefix = f"{category}-"
    return sorted(n for n in names if n.startswith(prefix) and n.endswith(".json"))


def _load(report_dir: Path, name: str) -> Any:
    with open(report_dir / name) as f:
        return decode_report(json.load(f))


def aggregate(
    report_dir: str | Path,
    baseline_window: int = DEFAULT_BASELINE_WINDOW,
    multi_category: str = DEFAULT_MULTI_CATEGORY,
) -> list[SummaryRow]:
    """Summarize the most recent reports in ``report_dir``.

    Args:
        report_dir: Directory holding ``<category>-<epochMillis>.json`` files.
        baseline_window: How many of the newest baseline reports to keep.
        multi_category: Filename prefix of the multi-filter report to include.

    Returns:
        Baseline rows in filename order, then at most one multi-filter row.

    Raises:
        ReportFormatError: If a selected report has an unrecognised shape.
    """
    report_dir = Path(report_dir)
    names = [p.name for p in report_dir.iterdir() if p.is_file()]

    baselines = _reports_with_prefix(names, "baseline")
    selected = baselines[-baseline_window:] if baseline_window > 0 else []
    rows: list[SummaryRow] = []
    for name in selected:
        report = _load(report_dir, name)
        if not isinstance(report, BaselineReport):
            logger.warning("Skipping %s: not a baseline report", name)
            continue
        rows.append(baseline_row(report, name))

    multis = _reports_with_prefix(names, multi_category)
    if multis:
        latest = multis[-1]
        report = _load(report_dir, latest)
        if isinstance(report, MultiFilterReport):
            rows.append(multi_row(report, latest))
        else:
            logger.warning("Skipping %s: not a multi-filter report", latest)

    logger.info(
        "Aggregated %d baseline and %d multi-filter report(s)",
        len(selected), 1 if multis else 0,
    )
    return rows


def write_summary(rows: list[SummaryRow], path: str | Path) -> Path:
    """Write the summary list as JSON, replacing any previous summary."""
    path = Path(path)
    if path.exists():
        path.unlink()
    return write_json_once(path, [row.to_dict() for row in rows])
