"""Tests for configuration loading."""

from pathlib import Path

import pytest

from filterbench.config import (
    BenchConfig,
    ClearStrategy,
    EngineOptions,
    HistogramMode,
    ScenarioKind,
    SuiteConfig,
    clamp_fraction,
)
from filterbench.errors import InvalidConfig

BENCH_ENV = (
    "BENCH_ROWS", "BENCH_DIMS", "BENCH_MIN", "BENCH_MAX", "BENCH_LO_FRACTION",
    "BENCH_HI_FRACTION", "BENCH_COLUMNAR", "BENCH_SCENARIO", "BENCH_OUTPUT",
    "BENCH_SEED", "BENCH_BINS", "BENCH_IDLE_TIMEOUT", "BENCH_HIST_MODE",
    "BENCH_PROFILE_SHARD", "MICRO_ITERATIONS", "MICRO_HIST_MODES",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in BENCH_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestBenchConfig:
    def test_defaults_from_env(self, clean_env):
        config = BenchConfig.from_env()
        assert config.rows == 100_000
        assert config.dimensions == 6
        assert config.scenario is ScenarioKind.SINGLE
        assert not config.columnar
        assert config.output is None
        assert config.seed is None
        assert config.histogram_modes == [HistogramMode.DIRECT, HistogramMode.BUFFERED]

    def test_env_overrides(self, clean_env):
        clean_env.setenv("BENCH_ROWS", "5000000")
        clean_env.setenv("BENCH_COLUMNAR", "1")
        clean_env.setenv("BENCH_SCENARIO", "multi")
        clean_env.setenv("BENCH_OUTPUT", "/tmp/out.json")
        clean_env.setenv("BENCH_SEED", "9")
        clean_env.setenv("BENCH_PROFILE_SHARD", "1")
        clean_env.setenv("MICRO_HIST_MODES", "buffered")
        config = BenchConfig.from_env()
        assert config.rows == 5_000_000
        assert config.columnar
        assert config.scenario is ScenarioKind.MULTI
        assert config.output == Path("/tmp/out.json")
        assert config.seed == 9
        assert config.profile_shards
        assert config.histogram_modes == [HistogramMode.BUFFERED]

    def test_flags_need_exact_one(self, clean_env):
        clean_env.setenv("BENCH_COLUMNAR", "true")
        assert not BenchConfig.from_env().columnar

    def test_bad_env_value(self, clean_env):
        clean_env.setenv("BENCH_ROWS", "lots")
        with pytest.raises(InvalidConfig):
            BenchConfig.from_env()

    def test_unknown_scenario(self, clean_env):
        clean_env.setenv("BENCH_SCENARIO", "triple")
        with pytest.raises(InvalidConfig):
            BenchConfig.from_env()

    def test_fractions_clamped(self):
        config = BenchConfig(lo_fraction=-0.5, hi_fraction=3.0)
        assert config.filter_window == (0.0, 1.0)

    def test_value_at(self):
        config = BenchConfig(range_min=100, range_max=200)
        assert config.value_at(0.25) == 125

    def test_empty_range_rejected(self):
        with pytest.raises(InvalidConfig):
            BenchConfig(range_min=10, range_max=10)

    def test_engine_options(self):
        config = BenchConfig(bins=128, profile_shards=True)
        options = config.engine_options(histogram_mode=HistogramMode.DIRECT)
        assert options.bins == 128
        assert options.profile_shards
        assert options.histogram_mode is HistogramMode.DIRECT

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "bench.yaml"
        path.write_text(
            "rows: 2000\n"
            "dimensions: 3\n"
            "columnar: true\n"
            "scenario: multi\n"
            "seed: 4\n"
            "histogram_modes: [buffered]\n"
        )
        config = BenchConfig.from_yaml(path)
        assert config.rows == 2_000
        assert config.dimensions == 3
        assert config.columnar
        assert config.scenario is ScenarioKind.MULTI
        assert config.seed == 4
        assert config.histogram_modes == [HistogramMode.BUFFERED]

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert BenchConfig.from_yaml(path).rows == 100_000


class TestClampFraction:
    @pytest.mark.parametrize(
        "value,expected",
        [(0.3, 0.3), (-1.0, 0.0), (2.0, 1.0), (float("nan"), 0.0), (float("inf"), 0.0)],
    )
    def test_clamp(self, value, expected):
        assert clamp_fraction(value) == expected


class TestEngineOptions:
    def test_defaults(self):
        options = EngineOptions()
        assert options.clear_strategy is ClearStrategy.DELTA
        assert options.histogram_mode is HistogramMode.AUTO

    def test_invalid_bins(self):
        with pytest.raises(InvalidConfig):
            EngineOptions(bins=0)

    def test_from_dict(self):
        options = EngineOptions.from_dict({"clear_strategy": "recompute", "bins": 64})
        assert options.clear_strategy is ClearStrategy.RECOMPUTE
        assert options.bins == 64


class TestSuiteConfig:
    def test_from_yaml(self, tmp_path):
        path = tmp_path / "suite.yaml"
        path.write_text(
            "reports_dir: out\n"
            "baseline_window: 3\n"
            "steps:\n"
            "  - label: Baseline tiny\n"
            "    command: [filterbench, run]\n"
            "    env: {BENCH_ROWS: '100'}\n"
            "    category: baseline\n"
        )
        config = SuiteConfig.from_yaml(path)
        assert config.reports_dir == Path("out")
        assert config.baseline_window == 3
        assert config.steps[0]["label"] == "Baseline tiny"

    def test_negative_window(self):
        with pytest.raises(InvalidConfig):
            SuiteConfig(baseline_window=-1)
