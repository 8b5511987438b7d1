"""Command-line entry point.

Usage:
    filterbench run [--scenario single|multi] [--rows N] [--columnar] [--output PATH]
    filterbench micro [--output PATH]
    filterbench perf [--sizes 100000,500000] [--iterations 5]
    filterbench scenario brush-sweep [--max-commands N]
    filterbench suite [--config suite.yaml]
    filterbench summarize [--reports-dir reports] [--output reports-summary.json]

``run`` and ``micro`` read their defaults from the BENCH_* / MICRO_*
environment variables (see ``filterbench.config``); flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from .config import BenchConfig, ScenarioKind, SuiteConfig
from .engine.base import EngineFactory
from .errors import FilterBenchError, InvalidConfig
from .reports.aggregator import aggregate, write_summary
from .reports.writer import write_json_once
from .runner import BenchmarkRunner
from .scenarios.registry import default_registry
from .suite import SuiteOrchestrator
from .workloads import PerformanceSuite, run_baseline, run_histogram_micro, run_multi_filter
from .workloads import run_scenario as replay_scenario

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "filterbench.engine.sandbox:create"


def load_factory(target: str) -> EngineFactory:
    """Resolve ``module:callable`` to an engine factory."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise InvalidConfig(f"Engine must be given as module:callable, got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise InvalidConfig(f"Cannot import engine module {module_name!r}: {e}") from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise InvalidConfig(f"Engine factory {target!r} is not callable")
    return factory


def _bench_config(args: argparse.Namespace) -> BenchConfig:
    config = BenchConfig.from_yaml(args.config) if args.config else BenchConfig.from_env()
    overrides: dict[str, Any] = {}
    if args.rows is not None:
        overrides["rows"] = args.rows
    if args.dims is not None:
        overrides["dimensions"] = args.dims
    if args.columnar:
        overrides["columnar"] = True
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.output is not None:
        overrides["output"] = Path(args.output)
    if getattr(args, "scenario", None):
        overrides["scenario"] = ScenarioKind(args.scenario)
    return replace(config, **overrides) if overrides else config


def _emit(payload: Any, output: Path | None) -> None:
    if output is not None:
        write_json_once(output, payload)
        return
    data = payload.to_dict() if hasattr(payload, "to_dict") else payload
    print(json.dumps(data, indent=2))


def cmd_run(args: argparse.Namespace) -> int:
    config = _bench_config(args)
    factory = load_factory(args.engine)
    if config.scenario is ScenarioKind.MULTI:
        report = asyncio.run(run_multi_filter(factory, config))
    else:
        report = asyncio.run(run_baseline(factory, config))
    _emit(report, config.output)
    return 0


def cmd_micro(args: argparse.Namespace) -> int:
    config = _bench_config(args)
    if args.output is None and os.environ.get("MICRO_OUTPUT"):
        config = replace(config, output=Path(os.environ["MICRO_OUTPUT"]))
    results = asyncio.run(run_histogram_micro(load_factory(args.engine), config))
    _emit([r.to_dict() for r in results], config.output)
    return 0


def cmd_perf(args: argparse.Namespace) -> int:
    try:
        sizes = tuple(int(s) for s in args.sizes.split(",") if s.strip())
    except ValueError as e:
        raise InvalidConfig(f"Invalid --sizes: {args.sizes}") from e
    suite = PerformanceSuite(
        load_factory(args.engine),
        runner=BenchmarkRunner(),
        sizes=sizes,
        iterations=args.iterations,
        idle_timeout=args.idle_timeout,
        seed=args.seed,
    )
    asyncio.run(suite.run())
    for summary in suite.runner.summarize():
        logger.info(
            "%-20s %12s rows  p50=%8.2f ms  p95=%8.2f ms  p99=%8.2f ms  failures=%d",
            summary.name,
            f"{summary.dataset_size:,}",
            summary.latency.p50_ms,
            summary.latency.p95_ms,
            summary.latency.p99_ms,
            summary.failures,
        )
    _emit(suite.runner.to_dict(), Path(args.output) if args.output else None)
    return 1 if suite.runner.failures else 0


def cmd_scenario(args: argparse.Namespace) -> int:
    scenario = default_registry().get(args.name)
    if scenario is None:
        known = ", ".join(default_registry().names())
        logger.error("Unknown scenario %s (known: %s)", args.name, known)
        return 1
    config = _bench_config(args)
    result = asyncio.run(
        replay_scenario(
            load_factory(args.engine), scenario, config, max_commands=args.max_commands
        )
    )
    _emit(result, config.output)
    return 0


def cmd_suite(args: argparse.Namespace) -> int:
    config = SuiteConfig.from_yaml(args.config) if args.config else SuiteConfig()
    if args.reports_dir:
        config.reports_dir = Path(args.reports_dir)
    if args.summary:
        config.summary_path = Path(args.summary)
    result = asyncio.run(SuiteOrchestrator(config).run())
    logger.info("Suite finished: %d step(s), summary at %s", len(result.steps), result.summary_path)
    return 0


def cmd_summarize(args: argparse.Namespace) -> int:
    rows = aggregate(args.reports_dir, baseline_window=args.window)
    for row in rows:
        logger.info("%s: %s", row.label, json.dumps(row.to_dict()))
    path = write_summary(rows, args.output)
    logger.info("Summary written to %s", path)
    return 0


def _add_bench_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="YAML file with benchmark settings (replaces BENCH_* env)")
    parser.add_argument("--rows", type=int, help="Rows to generate")
    parser.add_argument("--dims", type=int, help="Dimensions to generate")
    parser.add_argument("--columnar", action="store_true", help="Ingest columnar data")
    parser.add_argument("--seed", type=int, help="Dataset generator seed")
    parser.add_argument("--output", help="Write the report to this path (default: stdout)")
    parser.add_argument(
        "--engine",
        default=DEFAULT_ENGINE,
        help=f"Engine factory as module:callable (default: {DEFAULT_ENGINE})",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filterbench",
        description="Benchmark harness for worker-based columnar filtering engines",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # run
    run_parser = subparsers.add_parser("run", help="Run a single or multi-filter benchmark")
    _add_bench_arguments(run_parser)
    run_parser.add_argument("--scenario", choices=[k.value for k in ScenarioKind])
    run_parser.set_defaults(func=cmd_run)

    # micro
    micro_parser = subparsers.add_parser("micro", help="Histogram update-mode micro-benchmark")
    _add_bench_arguments(micro_parser)
    micro_parser.set_defaults(func=cmd_micro)

    # perf
    perf_parser = subparsers.add_parser("perf", help="Per-operation performance suite")
    perf_parser.add_argument("--sizes", default="100000,500000,1000000")
    perf_parser.add_argument("--iterations", type=int, default=5)
    perf_parser.add_argument("--idle-timeout", type=float, default=30.0)
    perf_parser.add_argument("--seed", type=int)
    perf_parser.add_argument("--output", help="Write samples and summary JSON here")
    perf_parser.add_argument("--engine", default=DEFAULT_ENGINE)
    perf_parser.set_defaults(func=cmd_perf)

    # scenario
    scenario_parser = subparsers.add_parser("scenario", help="Replay a registered scenario")
    scenario_parser.add_argument("name", help="Scenario name (e.g. brush-sweep)")
    scenario_parser.add_argument("--max-commands", type=int)
    _add_bench_arguments(scenario_parser)
    scenario_parser.set_defaults(func=cmd_scenario)

    # suite
    suite_parser = subparsers.add_parser("suite", help="Run the full benchmark suite")
    suite_parser.add_argument("--config", help="YAML suite configuration")
    suite_parser.add_argument("--reports-dir")
    suite_parser.add_argument("--summary", help="Summary JSON path")
    suite_parser.set_defaults(func=cmd_suite)

    # summarize
    summarize_parser = subparsers.add_parser("summarize", help="Summarize a reports directory")
    summarize_parser.add_argument("--reports-dir", default="reports")
    summarize_parser.add_argument("--output", default="reports-summary.json")
    summarize_parser.add_argument("--window", type=int, default=6, help="Baseline reports to keep")
    summarize_parser.set_defaults(func=cmd_summarize)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    parsed = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.INFO,
        format="%(message)s",
    )
    try:
        return parsed.func(parsed)
    except FilterBenchError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
