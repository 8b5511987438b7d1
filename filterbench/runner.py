"""Benchmark runner.

Times named asynchronous operations. The clock stops only after the
operation, including any idle waits it performs, has completed, and
measurements never overlap.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from .metrics import OperationSummary, TimingSample, summarize_samples

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


class BenchmarkRunner:
    """Collects timing samples for named operations.

    Args:
        abort_on_failure: Re-raise the first failing operation instead of
            recording it and moving on. Comparison runs that need strict
            pairing of samples set this.
    """

    def __init__(self, abort_on_failure: bool = False) -> None:
        self._abort_on_failure = abort_on_failure
        self._samples: list[TimingSample] = []
        self._lock = asyncio.Lock()

    @property
    def samples(self) -> list[TimingSample]:
        return list(self._samples)

    @property
    def failures(self) -> list[TimingSample]:
        return [s for s in self._samples if s.failed]

    async def measure(self, name: str, size: int, operation: Operation) -> TimingSample:
        """Time ``operation`` and record the sample.

        Returns:
            The recorded sample. Failed operations yield a sample with
            ``elapsed_ms=None`` and ``error`` set.
        """
        async with self._lock:
            started_at = time.time()
            start = time.perf_counter()
            try:
                await operation()
            except Exception as e:
                sample = TimingSample(
                    name=name,
                    dataset_size=size,
                    elapsed_ms=None,
                    error=f"{type(e).__name__}: {e}",
                    timestamp=started_at,
                )
                self._samples.append(sample)
                logger.warning("%s [%s rows]: FAILED (%s)", name, f"{size:,}", sample.error)
                if self._abort_on_failure:
                    raise
                return sample

            elapsed_ms = (time.perf_counter() - start) * 1000
            sample = TimingSample(
                name=name,
                dataset_size=size,
                elapsed_ms=elapsed_ms,
                timestamp=started_at,
            )
            self._samples.append(sample)
            logger.info("%s [%s rows]: %.2f ms", name, f"{size:,}", elapsed_ms)
            return sample

    def record_failure(self, name: str, size: int, error: BaseException) -> TimingSample:
        """Record a failure that happened outside the timed region (e.g. setup)."""
        sample = TimingSample(
            name=name,
            dataset_size=size,
            elapsed_ms=None,
            error=f"{type(error).__name__}: {error}",
            timestamp=time.time(),
        )
        self._samples.append(sample)
        logger.warning("%s [%s rows]: FAILED during setup (%s)", name, f"{size:,}", sample.error)
        if self._abort_on_failure:
            raise error
        return sample

    def summarize(self) -> list[OperationSummary]:
        return summarize_samples(self._samples)

    def to_dict(self) -> dict[str, Any]:
        return {
            "samples": [s.to_dict() for s in self._samples],
            "summary": [s.to_dict() for s in self.summarize()],
        }

    def clear(self) -> None:
        self._samples.clear()
