"""Benchmark and scenario harness for worker-based columnar filtering engines.

Provides:
- Deterministic dataset generation (row and columnar forms)
- Scripted filter scenarios replayed one command at a time
- Timed workloads that wait for engine quiescence before stopping the clock
- A fail-fast suite orchestrator and a report summarizer
"""

from .config import BenchConfig, EngineOptions, SuiteConfig
from .driver import ReplayResult, ScenarioDriver
from .runner import BenchmarkRunner
from .suite import SuiteOrchestrator

__all__ = [
    "BenchConfig",
    "BenchmarkRunner",
    "EngineOptions",
    "ReplayResult",
    "ScenarioDriver",
    "SuiteConfig",
    "SuiteOrchestrator",
]
