"""Tests for the command-line entry point."""

import json

import pytest

from conftest import baseline_payload, write_report
from filterbench.cli import build_parser, load_factory, main
from filterbench.engine import sandbox
from filterbench.errors import InvalidConfig, UnknownDimension


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("BENCH_OUTPUT", "BENCH_ROWS", "BENCH_SCENARIO", "MICRO_OUTPUT", "BENCH_COLUMNAR"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadFactory:
    def test_default_engine(self):
        assert load_factory("filterbench.engine.sandbox:create") is sandbox.create

    def test_malformed(self):
        with pytest.raises(InvalidConfig):
            load_factory("filterbench.engine.sandbox")

    def test_missing_module(self):
        with pytest.raises(InvalidConfig):
            load_factory("no_such_module_anywhere:create")


class TestMain:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_run_single(self, tmp_path):
        output = tmp_path / "baseline.json"
        code = main(["run", "--rows", "2000", "--dims", "3", "--seed", "1", "--output", str(output)])
        assert code == 0
        data = json.loads(output.read_text())
        assert data["scenario"] == "single"
        assert data["rows"] == 2_000

    def test_run_multi_from_env(self, tmp_path, clean_env):
        output = tmp_path / "multi.json"
        clean_env.setenv("BENCH_OUTPUT", str(output))
        clean_env.setenv("BENCH_SCENARIO", "multi")
        clean_env.setenv("BENCH_ROWS", "3000")
        assert main(["run", "--columnar"]) == 0
        data = json.loads(output.read_text())
        assert data["scenario"] == "multi"
        assert data["columnar"] is True
        assert len(data["filters"]) == 3

    def test_run_refuses_existing_output(self, tmp_path):
        output = tmp_path / "taken.json"
        output.write_text("{}")
        with pytest.raises(FileExistsError):
            main(["run", "--rows", "100", "--output", str(output)])

    def test_unknown_dimension_exits_non_zero(self, monkeypatch):
        async def missing_dimension(factory, config):
            raise UnknownDimension("Unknown dimension: dim0", dim="dim0")

        monkeypatch.setattr("filterbench.cli.run_baseline", missing_dimension)
        assert main(["run", "--rows", "100"]) == 1


    def test_micro_uses_micro_output(self, tmp_path, clean_env):
        output = tmp_path / "micro.json"
        clean_env.setenv("MICRO_OUTPUT", str(output))
        assert main(["micro", "--rows", "1000", "--dims", "2"]) == 0
        data = json.loads(output.read_text())
        assert [r["mode"] for r in data] == ["direct", "buffered"]

    def test_scenario(self, capsys):
        assert main(["scenario", "brush-sweep", "--rows", "1000", "--max-commands", "8"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["commands"] == 8
        assert data["exhausted"] is False

    def test_unknown_scenario(self):
        assert main(["scenario", "moonwalk", "--rows", "10"]) == 1

    def test_perf(self, tmp_path):
        output = tmp_path / "perf.json"
        code = main(["perf", "--sizes", "1000", "--iterations", "1", "--output", str(output)])
        assert code == 0
        data = json.loads(output.read_text())
        assert len(data["samples"]) == 6

    def test_summarize(self, tmp_path):
        reports = tmp_path / "reports"
        write_report(reports, "baseline-1.json", baseline_payload())
        summary = tmp_path / "summary.json"
        assert main(["summarize", "--reports-dir", str(reports), "--output", str(summary)]) == 0
        assert json.loads(summary.read_text())[0]["report"] == "baseline-1.json"

    def test_errors_exit_non_zero(self):
        assert main(["run", "--rows", "10", "--engine", "nowhere"]) == 1
