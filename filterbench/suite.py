"""Suite orchestrator.

Runs a fixed sequence of benchmark steps, each an external command,
strictly one after another. Steps that produce a report get a fresh
``<category>-<epochMillis>.json`` path in their environment. The first
failing step stops the suite; reports written by earlier steps stay on
disk. A summary of the reports directory is generated last.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .config import SuiteConfig
from .errors import FilterBenchError, InvalidConfig, StepFailed
from .reports.aggregator import SummaryRow, aggregate, write_summary
from .reports.writer import ReportWriter

logger = logging.getLogger(__name__)

SUMMARY_LABEL = "Generating summary"


@dataclass(frozen=True)
class SuiteStep:
    """One command in the suite.

    When ``category`` is set, the orchestrator allocates a report path
    in that category and passes it in the ``output_env`` variable.
    """

    label: str
    command: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict)
    category: str | None = None
    output_env: str = "BENCH_OUTPUT"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SuiteStep:
        if "label" not in data or "command" not in data:
            raise InvalidConfig("Suite step needs 'label' and 'command'", step=str(data))
        command = data["command"]
        if isinstance(command, str):
            command = shlex.split(command)
        return cls(
            label=str(data["label"]),
            command=tuple(str(c) for c in command),
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            category=data.get("category"),
            output_env=data.get("output_env", "BENCH_OUTPUT"),
        )


@dataclass
class StepResult:
    """Outcome of running one step."""

    label: str
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    wall_clock_seconds: float = 0.0
    output: Path | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.returncode == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "success": self.success,
            "returncode": self.returncode,
            "wall_clock_seconds": round(self.wall_clock_seconds, 3),
            "output": str(self.output) if self.output else None,
            "error": self.error,
        }


@runtime_checkable
class CommandExecutor(Protocol):
    """Runs one suite step to completion."""

    async def run(
        self, step: SuiteStep, env: dict[str, str], timeout: float
    ) -> StepResult:
        """Run ``step`` with ``env`` layered over the inherited environment."""
        ...


class SubprocessExecutor:
    """Executes steps as child processes."""

    def __init__(self, cwd: str | Path | None = None) -> None:
        self._cwd = str(cwd) if cwd is not None else None

    async def run(
        self, step: SuiteStep, env: dict[str, str], timeout: float
    ) -> StepResult:
        start_time = time.time()
        try:
            process = await asyncio.create_subprocess_exec(
                *step.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                env={**os.environ, **env},
            )
        except FileNotFoundError:
            return StepResult(label=step.label, error=f"Command not found: {step.command[0]}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            return StepResult(
                label=step.label,
                returncode=process.returncode,
                wall_clock_seconds=time.time() - start_time,
                error=f"Timeout after {timeout}s",
            )

        err_output = stderr.decode("utf-8", errors="replace")
        return StepResult(
            label=step.label,
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=err_output,
            wall_clock_seconds=time.time() - start_time,
            error=None if process.returncode == 0 else f"exit code {process.returncode}",
        )


def _cli(*args: str) -> tuple[str, ...]:
    return (sys.executable, "-m", "filterbench.cli", *args)


def default_steps() -> list[SuiteStep]:
    """The standard benchmark suite."""
    return [
        SuiteStep("Baseline 100k rows", _cli("run"), {"BENCH_ROWS": "100000"}, "baseline"),
        SuiteStep(
            "Baseline 100k columnar",
            _cli("run"),
            {"BENCH_ROWS": "100000", "BENCH_COLUMNAR": "1"},
            "baseline",
        ),
        SuiteStep("Baseline 1M rows", _cli("run"), {"BENCH_ROWS": "1000000"}, "baseline"),
        SuiteStep(
            "Baseline 1M columnar",
            _cli("run"),
            {"BENCH_ROWS": "1000000", "BENCH_COLUMNAR": "1"},
            "baseline",
        ),
        SuiteStep(
            "Multi-filter 1M rows",
            _cli("run"),
            {"BENCH_SCENARIO": "multi", "BENCH_ROWS": "1000000"},
            "multi-rows",
        ),
        SuiteStep(
            "Multi-filter 5M columnar",
            _cli("run"),
            {
                "BENCH_SCENARIO": "multi",
                "BENCH_ROWS": "5000000",
                "BENCH_COLUMNAR": "1",
                "BENCH_PROFILE_SHARD": "1",
            },
            "multi-simd-profile",
        ),
        SuiteStep(
            "Histogram microbench",
            _cli("micro"),
            {"BENCH_ROWS": "1000000", "BENCH_DIMS": "6"},
            "micro-histogram",
            output_env="MICRO_OUTPUT",
        ),
    ]


def steps_from_config(config: SuiteConfig) -> list[SuiteStep]:
    if config.steps is None:
        return default_steps()
    return [SuiteStep.from_dict(s) for s in config.steps]


@dataclass
class SuiteResult:
    steps: list[StepResult] = field(default_factory=list)
    summary: list[SummaryRow] = field(default_factory=list)
    summary_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "summary": [r.to_dict() for r in self.summary],
            "summary_path": str(self.summary_path) if self.summary_path else None,
        }


class SuiteOrchestrator:
    """Runs suite steps sequentially and fails fast.

    Args:
        config: Suite configuration (reports dir, timeouts, summary path).
        executor: Runs each step; defaults to ``SubprocessExecutor``.
        steps: Overrides the steps named by ``config``.
    """

    def __init__(
        self,
        config: SuiteConfig | None = None,
        executor: CommandExecutor | None = None,
        steps: list[SuiteStep] | None = None,
    ) -> None:
        self._config = config or SuiteConfig()
        self._executor = executor or SubprocessExecutor()
        self._steps = steps if steps is not None else steps_from_config(self._config)
        self._writer = ReportWriter(self._config.reports_dir)

    @property
    def steps(self) -> list[SuiteStep]:
        return list(self._steps)

    async def run(self) -> SuiteResult:
        """Run every step, then generate the summary.

        Raises:
            StepFailed: On the first step that fails; later steps are skipped.
        """
        result = SuiteResult()
        self._config.reports_dir.mkdir(parents=True, exist_ok=True)

        for i, step in enumerate(self._steps, 1):
            logger.info("[%d/%d] %s", i, len(self._steps), step.label)
            env = dict(step.env)
            output: Path | None = None
            if step.category is not None:
                output = self._writer.allocate(step.category)
                env[step.output_env] = str(output)

            step_result = await self._executor.run(
                step, env, self._config.step_timeout_seconds
            )
            step_result.output = output
            result.steps.append(step_result)

            if not step_result.success:
                reason = step_result.error or f"exit code {step_result.returncode}"
                logger.error("%s failed: %s", step.label, reason)
                if step_result.stderr:
                    logger.error(step_result.stderr.rstrip())
                raise StepFailed(step.label, reason, step_result.returncode)
            logger.info(
                "%s done in %.1fs", step.label, step_result.wall_clock_seconds
            )

        logger.info("[%d/%d] %s", len(self._steps) + 1, len(self._steps) + 1, SUMMARY_LABEL)
        try:
            result.summary = aggregate(
                self._config.reports_dir,
                baseline_window=self._config.baseline_window,
                multi_category=self._config.multi_category,
            )
            result.summary_path = write_summary(result.summary, self._config.summary_path)
        except (FilterBenchError, OSError) as e:
            logger.error("%s failed: %s", SUMMARY_LABEL, e)
            raise StepFailed(SUMMARY_LABEL, str(e)) from e
        return result
