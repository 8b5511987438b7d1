"""Scenario replay driver.

Feeds a scenario's commands to one engine handle, strictly one at a
time: each command is validated, checked for sequence order, sent, and
followed by an idle wait before the next command is pulled from the
script.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from .engine.base import EngineHandle
from .protocol import SequenceGuard, validate_command
from .scenarios.registry import Scenario

logger = logging.getLogger(__name__)


def _drained(scenario: Scenario, commands: Iterator[Any]) -> bool:
    """Whether a budget stop happened to land on the last command.

    A stateful script is never looked ahead, since the pulled command
    would be lost to the next replay.
    """
    if scenario.stateful:
        return False
    return next(commands, None) is None


@dataclass
class ReplayResult:
    """Outcome of replaying one scenario."""

    scenario: str
    commands: int = 0
    last_seq: int | None = None
    elapsed_ms: float = 0.0
    active_counts: list[int] = field(default_factory=list)
    exhausted: bool = True  # False when a budget stopped the replay early

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "commands": self.commands,
            "lastSeq": self.last_seq,
            "elapsedMs": self.elapsed_ms,
            "finalActiveCount": self.active_counts[-1] if self.active_counts else None,
            "exhausted": self.exhausted,
        }


class ScenarioDriver:
    """Owns one engine handle for the duration of a replay.

    Args:
        handle: Engine to drive. The driver is its only writer.
        idle_timeout: Bound for each idle wait, in seconds.
        max_commands: Stop after this many commands (for unbounded scripts).
        time_budget: Stop once this many seconds have elapsed.
    """

    def __init__(
        self,
        handle: EngineHandle,
        idle_timeout: float | None = None,
        max_commands: int | None = None,
        time_budget: float | None = None,
    ) -> None:
        self._handle = handle
        self._idle_timeout = idle_timeout
        self._max_commands = max_commands
        self._time_budget = time_budget
        self._running = False

    async def run(self, scenario: Scenario) -> ReplayResult:
        """Replay ``scenario`` against the handle.

        Raises:
            UnknownCommand: If the script yields something that is not a command.
            ProtocolViolation: If the script's sequence numbers go backwards.
            IdleTimeout: If the engine does not settle after a command.
        """
        if self._running:
            raise RuntimeError("ScenarioDriver is already replaying a scenario")
        self._running = True
        try:
            return await self._replay(scenario)
        finally:
            self._running = False

    async def _replay(self, scenario: Scenario) -> ReplayResult:
        result = ReplayResult(scenario=scenario.name)
        guard = SequenceGuard()
        start = time.perf_counter()
        logger.info("Replaying scenario %s", scenario.name)

        commands = iter(scenario.script())
        for command in commands:
            validate_command(command)
            guard.check(command)
            self._handle.send(command)
            await self._handle.when_idle(self._idle_timeout)

            result.commands += 1
            result.last_seq = guard.last_seq
            result.active_counts.append(self._handle.active_count())

            if self._max_commands is not None and result.commands >= self._max_commands:
                result.exhausted = _drained(scenario, commands)
                break
            if (
                self._time_budget is not None
                and time.perf_counter() - start >= self._time_budget
            ):
                result.exhausted = _drained(scenario, commands)
                break

        result.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Scenario %s: %d commands in %.2f ms",
            scenario.name, result.commands, result.elapsed_ms,
        )
        return result
