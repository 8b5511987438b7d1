"""Write-once report files.

Each report lands in ``<category>-<epochMillis>.json``. Content is
written to a hidden temporary file and moved into place only when the
target name is free, so readers never see a partially written report
and an existing report is never overwritten.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from ..errors import InvalidConfig
from .models import REPORT_CATEGORIES

logger = logging.getLogger(__name__)


def report_filename(category: str, epoch_ms: int) -> str:
    return f"{category}-{epoch_ms}.json"


class ReportWriter:
    """Writes timestamped JSON reports into one directory."""

    def __init__(self, reports_dir: str | Path, strict_categories: bool = True) -> None:
        self._reports_dir = Path(reports_dir)
        self._strict = strict_categories

    @property
    def reports_dir(self) -> Path:
        return self._reports_dir

    def allocate(self, category: str) -> Path:
        """Reserve a fresh report path for ``category`` without writing it."""
        self._check_category(category)
        epoch_ms = int(time.time() * 1000)
        path = self._reports_dir / report_filename(category, epoch_ms)
        while path.exists():
            epoch_ms += 1
            path = self._reports_dir / report_filename(category, epoch_ms)
        return path

    def write(self, report: Any, category: str) -> Path:
        """Serialize ``report`` (an object with ``to_dict`` or plain JSON data)."""
        self._reports_dir.mkdir(parents=True, exist_ok=True)
        return write_json_once(self.allocate(category), report)

    def _check_category(self, category: str) -> None:
        if self._strict and category not in REPORT_CATEGORIES:
            raise InvalidConfig(f"Unknown report category: {category}", category=category)


def write_json_once(path: str | Path, payload: Any) -> Path:
    """Write ``payload`` as JSON to ``path``, refusing to replace an existing file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = payload.to_dict() if hasattr(payload, "to_dict") else payload
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    tmp_path.write_text(json.dumps(data, indent=2))
    try:
        # link() fails if the target exists, unlike rename() on POSIX
        os.link(tmp_path, path)
    except FileExistsError:
        raise FileExistsError(f"Report already exists: {path}") from None
    finally:
        tmp_path.unlink(missing_ok=True)
    logger.info("Wrote report to %s", path)
    return path
