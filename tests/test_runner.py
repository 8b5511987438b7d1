"""Tests for the benchmark runner and timing metrics."""

import asyncio

import pytest

from filterbench.engine import create
from filterbench.errors import IdleTimeout
from filterbench.metrics import LatencyStats, TimingSample, summarize_samples
from filterbench.runner import BenchmarkRunner
from filterbench.workloads import PerformanceSuite


class TestLatencyStats:
    def test_empty(self):
        stats = LatencyStats.from_values([])
        assert stats.count == 0
        assert stats.p99_ms == 0.0

    def test_single_value(self):
        stats = LatencyStats.from_values([4.0])
        assert stats.p50_ms == stats.p95_ms == stats.p99_ms == 4.0
        assert stats.stddev_ms == 0.0

    def test_percentiles(self):
        stats = LatencyStats.from_values([float(v) for v in range(1, 101)])
        assert stats.count == 100
        assert stats.mean_ms == pytest.approx(50.5)
        assert stats.p50_ms == pytest.approx(50.5)
        assert stats.p95_ms == pytest.approx(95.05)
        assert stats.p99_ms == pytest.approx(99.01)
        assert stats.min_ms == 1.0
        assert stats.max_ms == 100.0
        assert stats.p50_ms <= stats.p95_ms <= stats.p99_ms <= stats.max_ms

    def test_tail_outlier_moves_p99_not_p50(self):
        stats = LatencyStats.from_values([10.0] * 99 + [1000.0])
        assert stats.p50_ms == 10.0
        assert stats.p99_ms > 10.0
        assert stats.to_dict()["maxMs"] == 1000.0
        assert set(stats.to_dict()) == {
            "count", "meanMs", "p50Ms", "p95Ms", "p99Ms", "minMs", "maxMs", "stdDevMs"
        }

    def test_summary_groups_by_name_and_size(self):
        samples = [
            TimingSample("Filter (delta)", 100, 1.0),
            TimingSample("Filter (delta)", 100, 3.0),
            TimingSample("Filter (delta)", 200, 5.0),
            TimingSample("Filter (delta)", 100, None, error="IdleTimeout: slow"),
        ]
        summaries = summarize_samples(samples)
        assert [(s.name, s.dataset_size) for s in summaries] == [
            ("Filter (delta)", 100),
            ("Filter (delta)", 200),
        ]
        assert summaries[0].latency.mean_ms == 2.0
        assert summaries[0].failures == 1


class TestBenchmarkRunner:
    @pytest.mark.asyncio
    async def test_measure_records_sample(self):
        runner = BenchmarkRunner()

        async def op():
            await asyncio.sleep(0.01)

        sample = await runner.measure("Sleep", 10, op)
        assert not sample.failed
        assert sample.elapsed_ms > 5
        assert runner.samples == [sample]

    @pytest.mark.asyncio
    async def test_failure_recorded_and_run_continues(self):
        runner = BenchmarkRunner()

        async def fails():
            raise IdleTimeout("not idle")

        async def ok():
            pass

        failed = await runner.measure("Bad", 1, fails)
        passed = await runner.measure("Good", 1, ok)
        assert failed.failed
        assert failed.elapsed_ms is None
        assert "IdleTimeout" in failed.error
        assert not passed.failed
        assert runner.failures == [failed]

    @pytest.mark.asyncio
    async def test_abort_on_failure(self):
        runner = BenchmarkRunner(abort_on_failure=True)

        async def fails():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await runner.measure("Bad", 1, fails)
        assert len(runner.failures) == 1

    @pytest.mark.asyncio
    async def test_measurements_never_overlap(self):
        runner = BenchmarkRunner()
        running = []
        overlaps = []

        async def op():
            if running:
                overlaps.append(True)
            running.append(True)
            await asyncio.sleep(0.01)
            running.pop()

        await asyncio.gather(*(runner.measure(f"op{i}", 1, op) for i in range(4)))
        assert overlaps == []
        assert len(runner.samples) == 4

    @pytest.mark.asyncio
    async def test_to_dict(self):
        runner = BenchmarkRunner()

        async def op():
            pass

        await runner.measure("Op", 5, op)
        data = runner.to_dict()
        assert data["samples"][0]["name"] == "Op"
        assert data["summary"][0]["datasetSize"] == 5
        runner.clear()
        assert runner.samples == []


class TestIngestEndToEnd:
    @pytest.mark.asyncio
    async def test_columnar_ingest_single_sample(self):
        suite = PerformanceSuite(create, sizes=(100_000,), iterations=1, seed=1)
        sample = await suite.bench_ingest_columnar(100_000)
        assert suite.runner.samples == [sample]
        assert sample.name == "Ingest (columnar)"
        assert sample.dataset_size == 100_000
        assert not sample.failed
        assert sample.elapsed_ms > 0
