"""Named benchmark workloads.

Each workload owns its engine handle from creation to disposal and
waits for the engine to go idle after every mutating call before a
timing is taken or the next command is issued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from .config import BenchConfig, ClearStrategy, EngineOptions, HistogramMode
from .datasets import Dataset, dimension_name, generate
from .driver import ReplayResult, ScenarioDriver
from .engine.base import EngineFactory, EngineHandle
from .errors import IdleTimeout
from .metrics import TimingSample
from .reports.models import (
    BaselineReport,
    ChainEntry,
    IndexEntry,
    MultiFilterReport,
    ShardSummary,
)
from .runner import BenchmarkRunner
from .scenarios.registry import Scenario

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fraction windows applied to dim0, dim1, dim2 by the multi-filter run
MULTI_FILTERS: tuple[tuple[float, float], ...] = ((0.15, 0.85), (0.30, 0.65), (0.45, 0.75))


async def _acknowledged(ack: Awaitable[T], timeout: float) -> T:
    """Await an engine acknowledgement with the same bound as an idle wait."""
    try:
        return await asyncio.wait_for(ack, timeout)
    except TimeoutError as e:
        raise IdleTimeout(f"Engine did not acknowledge within {timeout}s", timeout=timeout) from e


def _elapsed(sample: TimingSample) -> float:
    # Report workloads run with abort_on_failure, so samples here succeeded
    return sample.elapsed_ms or 0.0


def _dataset_for(config: BenchConfig) -> Dataset:
    logger.info(
        "Generating dataset rows=%d dims=%d mode=%s scenario=%s",
        config.rows,
        config.dimensions,
        "columnar" if config.columnar else "rows",
        config.scenario.value,
    )
    return generate(
        config.rows,
        config.dimensions,
        config.range_min,
        config.range_max,
        columnar=config.columnar,
        seed=config.seed,
    )


async def _measured_ingest(
    runner: BenchmarkRunner,
    factory: EngineFactory,
    dataset: Dataset,
    config: BenchConfig,
    **option_overrides: Any,
) -> tuple[EngineHandle | None, TimingSample]:
    holder: list[EngineHandle] = []

    async def ingest() -> None:
        handle = factory(dataset, config.engine_options(**option_overrides))
        holder.append(handle)
        await handle.when_idle(config.idle_timeout)

    name = "Ingest (columnar)" if config.columnar else "Ingest (rows)"
    try:
        sample = await runner.measure(name, config.rows, ingest)
    except BaseException:
        for handle in holder:
            handle.dispose()
        raise
    if sample.failed and holder:
        holder[0].dispose()
        return None, sample
    return (holder[0] if holder else None), sample


async def run_baseline(
    factory: EngineFactory,
    config: BenchConfig,
    runner: BenchmarkRunner | None = None,
) -> BaselineReport:
    """Ingest, build one index, apply one filter window and clear it."""
    runner = runner or BenchmarkRunner(abort_on_failure=True)
    dataset = _dataset_for(config)
    handle, ingest = await _measured_ingest(runner, factory, dataset, config)
    if handle is None:
        raise RuntimeError(f"Ingest failed: {ingest.error}")
    try:
        dim_name = dimension_name(0)
        lo_fraction, hi_fraction = config.filter_window
        lo = config.value_at(lo_fraction)
        hi = config.value_at(hi_fraction)
        statuses = []

        async def build() -> None:
            statuses.append(await _acknowledged(handle.build_index(dim_name), config.idle_timeout))
            await handle.when_idle(config.idle_timeout)

        index = await runner.measure("Index build", config.rows, build)
        dimension = await _acknowledged(handle.dimension(dim_name), config.idle_timeout)

        async def apply_filter() -> None:
            dimension.filter((lo, hi))
            await handle.when_idle(config.idle_timeout)

        filtered = await runner.measure("Filter", config.rows, apply_filter)
        filter_active = handle.active_count()

        async def clear() -> None:
            dimension.clear()
            await handle.when_idle(config.idle_timeout)

        cleared = await runner.measure("Clear", config.rows, clear)
        clear_active = handle.active_count()
    finally:
        handle.dispose()

    return BaselineReport(
        rows=config.rows,
        dimensions=config.dimensions,
        columnar=config.columnar,
        ingest_ms=_elapsed(ingest),
        index_ms=_elapsed(index),
        index_bytes=statuses[0].bytes if statuses else 0,
        filter_ms=_elapsed(filtered),
        filter_active_count=filter_active,
        clear_ms=_elapsed(cleared),
        clear_active_count=clear_active,
        range_min=config.range_min,
        range_max=config.range_max,
        filter_fractions=(lo_fraction, hi_fraction),
    )


async def run_multi_filter(
    factory: EngineFactory,
    config: BenchConfig,
    runner: BenchmarkRunner | None = None,
) -> MultiFilterReport:
    """Filter up to three dimensions in turn, then clear them in reverse."""
    runner = runner or BenchmarkRunner(abort_on_failure=True)
    dataset = _dataset_for(config)
    handle, ingest = await _measured_ingest(runner, factory, dataset, config)
    if handle is None:
        raise RuntimeError(f"Ingest failed: {ingest.error}")

    targets = [dimension_name(i) for i in range(min(config.dimensions, len(MULTI_FILTERS)))]
    index_entries: list[IndexEntry] = []
    filters: list[ChainEntry] = []
    clears: list[ChainEntry] = []
    profiles: list[tuple[str, list]] = []
    try:
        for name in targets:
            status = await _acknowledged(handle.build_index(name), config.idle_timeout)
            await handle.when_idle(config.idle_timeout)
            index_entries.append(IndexEntry(dim=name, ms=status.ms, bytes=status.bytes))

        dimensions = {
            name: await _acknowledged(handle.dimension(name), config.idle_timeout)
            for name in targets
        }
        if config.profile_shards:
            handle.consume_shard_profile()

        for name, (lo_fraction, hi_fraction) in zip(targets, MULTI_FILTERS):
            window = (config.value_at(lo_fraction), config.value_at(hi_fraction))

            async def apply_filter(name: str = name, window: tuple = window) -> None:
                dimensions[name].filter(window)
                await handle.when_idle(config.idle_timeout)

            sample = await runner.measure(f"Filter {name}", config.rows, apply_filter)
            filters.append(ChainEntry(dim=name, ms=_elapsed(sample), active_count=handle.active_count()))
            logger.info("Filter dim=%s active=%d", name, handle.active_count())
            if config.profile_shards:
                profiles.append((name, handle.consume_shard_profile()))

        for name in reversed(targets):

            async def clear(name: str = name) -> None:
                dimensions[name].clear()
                await handle.when_idle(config.idle_timeout)

            sample = await runner.measure(f"Clear {name}", config.rows, clear)
            clears.append(ChainEntry(dim=name, ms=_elapsed(sample), active_count=handle.active_count()))
            if config.profile_shards:
                profiles.append((name, handle.consume_shard_profile()))
    finally:
        handle.dispose()

    clears.reverse()
    return MultiFilterReport(
        rows=config.rows,
        dimensions=config.dimensions,
        columnar=config.columnar,
        ingest_ms=_elapsed(ingest),
        index=tuple(index_entries),
        filters=tuple(filters),
        clears=tuple(clears),
        shard_summary=ShardSummary.from_profiles(profiles) if config.profile_shards else None,
        range_min=config.range_min,
        range_max=config.range_max,
    )


@dataclass
class ModeResult:
    """Histogram micro-benchmark result for one update mode."""

    mode: HistogramMode
    rows: int
    dimensions: int
    iterations: int
    ingest_ms: float
    filter_ms: list[float] = field(default_factory=list)
    clear_ms: list[float] = field(default_factory=list)
    active_counts: list[int] = field(default_factory=list)

    @property
    def filter_avg_ms(self) -> float:
        return sum(self.filter_ms) / len(self.filter_ms) if self.filter_ms else 0.0

    @property
    def clear_avg_ms(self) -> float:
        return sum(self.clear_ms) / len(self.clear_ms) if self.clear_ms else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "rows": self.rows,
            "dimensions": self.dimensions,
            "iterations": self.iterations,
            "ingestMs": self.ingest_ms,
            "filterAvgMs": self.filter_avg_ms,
            "clearAvgMs": self.clear_avg_ms,
            "samples": [
                {"filterMs": f, "clearMs": c, "activeCount": a}
                for f, c, a in zip(self.filter_ms, self.clear_ms, self.active_counts)
            ],
        }


async def run_histogram_micro(
    factory: EngineFactory,
    config: BenchConfig,
    runner: BenchmarkRunner | None = None,
) -> list[ModeResult]:
    """Repeated filter/clear on dim0 for each histogram update mode."""
    runner = runner or BenchmarkRunner(abort_on_failure=True)
    columnar = replace(config, columnar=True)
    results: list[ModeResult] = []
    lo_fraction, hi_fraction = config.filter_window
    window = (config.value_at(lo_fraction), config.value_at(hi_fraction))

    for mode in config.histogram_modes:
        logger.info("Running histogram microbench mode=%s rows=%d", mode.value, config.rows)
        dataset = _dataset_for(columnar)
        handle, ingest = await _measured_ingest(
            runner, factory, dataset, columnar, histogram_mode=mode
        )
        if handle is None:
            raise RuntimeError(f"Ingest failed: {ingest.error}")
        result = ModeResult(
            mode=mode,
            rows=config.rows,
            dimensions=config.dimensions,
            iterations=config.iterations,
            ingest_ms=_elapsed(ingest),
        )
        try:
            await _acknowledged(handle.build_index(dimension_name(0)), config.idle_timeout)
            await handle.when_idle(config.idle_timeout)
            dimension = await _acknowledged(
                handle.dimension(dimension_name(0)), config.idle_timeout
            )
            for _ in range(config.iterations):

                async def apply_filter() -> None:
                    dimension.filter(window)
                    await handle.when_idle(config.idle_timeout)

                async def clear() -> None:
                    dimension.clear()
                    await handle.when_idle(config.idle_timeout)

                result.filter_ms.append(
                    _elapsed(await runner.measure(f"Filter ({mode.value})", config.rows, apply_filter))
                )
                result.clear_ms.append(
                    _elapsed(await runner.measure(f"Clear ({mode.value})", config.rows, clear))
                )
                result.active_counts.append(handle.active_count())
        finally:
            handle.dispose()
        logger.info(
            "  clearAvg=%.2f ms filterAvg=%.2f ms", result.clear_avg_ms, result.filter_avg_ms
        )
        results.append(result)
    return results


async def run_scenario(
    factory: EngineFactory,
    scenario: Scenario,
    config: BenchConfig,
    runner: BenchmarkRunner | None = None,
    max_commands: int | None = None,
) -> ReplayResult:
    """Replay ``scenario`` on a fresh engine and time the whole replay."""
    runner = runner or BenchmarkRunner(abort_on_failure=True)
    dataset = _dataset_for(config)
    handle, ingest = await _measured_ingest(runner, factory, dataset, config)
    if handle is None:
        raise RuntimeError(f"Ingest failed: {ingest.error}")
    results: list[ReplayResult] = []
    try:
        driver = ScenarioDriver(
            handle, idle_timeout=config.idle_timeout, max_commands=max_commands
        )

        async def replay() -> None:
            results.append(await driver.run(scenario))

        await runner.measure(f"Scenario {scenario.name}", config.rows, replay)
    finally:
        handle.dispose()
    if not results:
        raise RuntimeError(f"Scenario {scenario.name} did not complete")
    return results[0]


class PerformanceSuite:
    """Micro-benchmarks of individual engine operations across dataset sizes.

    Every named operation gets a fresh engine handle which is disposed
    afterwards, whether the measurement succeeded, failed or timed out.
    """

    DIMENSIONS = 10
    VALUE_MAX = 4096

    def __init__(
        self,
        factory: EngineFactory,
        runner: BenchmarkRunner | None = None,
        sizes: tuple[int, ...] = (100_000, 500_000, 1_000_000),
        iterations: int = 5,
        idle_timeout: float = 30.0,
        seed: int | None = None,
        dimensions: int = DIMENSIONS,
    ) -> None:
        self._factory = factory
        self._runner = runner or BenchmarkRunner()
        self._sizes = sizes
        self._iterations = iterations
        self._idle_timeout = idle_timeout
        self._seed = seed
        self._dimensions = dimensions

    @property
    def runner(self) -> BenchmarkRunner:
        return self._runner

    def operations(self) -> list[tuple[str, Callable[[int], Awaitable[TimingSample | None]]]]:
        return [
            ("Ingest (columnar)", self.bench_ingest_columnar),
            ("Filter (delta)", self.bench_filter_delta),
            ("Clear (delta)", self.bench_clear_delta),
            ("Clear (recompute)", self.bench_clear_recompute),
            ("Index build", self.bench_index_build),
            ("Multi-filter", self.bench_multi_filter),
        ]

    async def run(self) -> list[TimingSample]:
        for size in self._sizes:
            for name, bench in self.operations():
                logger.info("%s: %s rows x %d iterations", name, f"{size:,}", self._iterations)
                for _ in range(self._iterations):
                    await bench(size)
        return self._runner.samples

    def _dataset(self, size: int) -> Dataset:
        return generate(size, self._dimensions, 0, self.VALUE_MAX, columnar=True, seed=self._seed)

    async def _prepare(
        self,
        size: int,
        clear_strategy: ClearStrategy = ClearStrategy.DELTA,
        index: tuple[str, ...] = (),
        filters: tuple[tuple[str, tuple[float, float]], ...] = (),
    ) -> EngineHandle:
        handle = self._factory(self._dataset(size), EngineOptions(clear_strategy=clear_strategy))
        try:
            await handle.when_idle(self._idle_timeout)
            for name in index:
                await _acknowledged(handle.build_index(name), self._idle_timeout)
            await handle.when_idle(self._idle_timeout)
            for name, window in filters:
                (await _acknowledged(handle.dimension(name), self._idle_timeout)).filter(window)
            await handle.when_idle(self._idle_timeout)
        except BaseException:
            handle.dispose()
            raise
        return handle

    async def _bench(
        self,
        name: str,
        size: int,
        setup: Callable[[], Awaitable[EngineHandle]],
        body: Callable[[EngineHandle], Awaitable[None]],
    ) -> TimingSample | None:
        try:
            handle = await setup()
        except Exception as e:
            self._runner.record_failure(name, size, e)
            return None
        try:
            return await self._runner.measure(name, size, lambda: body(handle))
        finally:
            handle.dispose()

    async def bench_ingest_columnar(self, size: int) -> TimingSample:
        dataset = self._dataset(size)
        handles: list[EngineHandle] = []

        async def ingest() -> None:
            handle = self._factory(dataset, EngineOptions())
            handles.append(handle)
            await handle.when_idle(self._idle_timeout)

        try:
            return await self._runner.measure("Ingest (columnar)", size, ingest)
        finally:
            for handle in handles:
                handle.dispose()

    async def bench_filter_delta(self, size: int) -> TimingSample | None:
        async def body(handle: EngineHandle) -> None:
            (await _acknowledged(handle.dimension("dim0"), self._idle_timeout)).filter((100, 200))
            await handle.when_idle(self._idle_timeout)

        return await self._bench(
            "Filter (delta)", size, lambda: self._prepare(size, index=("dim0",)), body
        )

    async def bench_clear_delta(self, size: int) -> TimingSample | None:
        async def body(handle: EngineHandle) -> None:
            (await _acknowledged(handle.dimension("dim0"), self._idle_timeout)).clear()
            await handle.when_idle(self._idle_timeout)

        return await self._bench(
            "Clear (delta)",
            size,
            lambda: self._prepare(size, index=("dim0",), filters=(("dim0", (100, 200)),)),
            body,
        )

    async def bench_clear_recompute(self, size: int) -> TimingSample | None:
        async def body(handle: EngineHandle) -> None:
            (await _acknowledged(handle.dimension("dim0"), self._idle_timeout)).clear()
            await handle.when_idle(self._idle_timeout)

        return await self._bench(
            "Clear (recompute)",
            size,
            lambda: self._prepare(
                size,
                clear_strategy=ClearStrategy.RECOMPUTE,
                filters=(("dim0", (100, 200)), ("dim1", (300, 400))),
            ),
            body,
        )

    async def bench_index_build(self, size: int) -> TimingSample | None:
        async def body(handle: EngineHandle) -> None:
            await _acknowledged(handle.build_index("dim0"), self._idle_timeout)
            await handle.when_idle(self._idle_timeout)

        return await self._bench("Index build", size, lambda: self._prepare(size), body)

    async def bench_multi_filter(self, size: int) -> TimingSample | None:
        names = tuple(f"dim{i}" for i in range(min(5, self._dimensions)))

        async def body(handle: EngineHandle) -> None:
            for i, name in enumerate(names):
                dimension = await _acknowledged(handle.dimension(name), self._idle_timeout)
                dimension.filter((i * 100, i * 100 + 50))
            await handle.when_idle(self._idle_timeout)

        return await self._bench(
            "Multi-filter", size, lambda: self._prepare(size, index=names), body
        )
