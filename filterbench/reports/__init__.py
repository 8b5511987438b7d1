"""Report models, write-once report files and summary aggregation."""

from .aggregator import SummaryRow, aggregate, write_summary
from .models import (
    BaselineReport,
    ChainEntry,
    IndexEntry,
    MultiFilterReport,
    Report,
    ShardSummary,
    decode_report,
)
from .writer import ReportWriter, write_json_once

__all__ = [
    "BaselineReport",
    "ChainEntry",
    "IndexEntry",
    "MultiFilterReport",
    "Report",
    "ReportWriter",
    "ShardSummary",
    "SummaryRow",
    "aggregate",
    "decode_report",
    "write_json_once",
    "write_summary",
]
