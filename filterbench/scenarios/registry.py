"""Scenario scripts and the registry that names them.

A scenario is a name plus a ``script`` callable returning a lazy,
ordered iterator of protocol commands. Calling ``script()`` again
restarts the sequence unless the scenario is marked stateful.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from ..protocol import Command, DimId, FilterSet, command_seq

Script = Callable[[], Iterator[Command]]


@dataclass(frozen=True)
class Scenario:
    """A named, replayable command sequence."""

    name: str
    script: Script
    description: str = ""
    stateful: bool = False  # script() resumes rather than restarts


def brush_sweep_script(
    dim_id: DimId = 0, steps: int = 64, width: int = 4
) -> Script:
    """Slide a ``width``-wide window across ``steps`` positions on one dimension."""

    def script() -> Iterator[Command]:
        for step in range(steps):
            yield FilterSet(dim_id=dim_id, lo=step, hi=step + width, seq=step)

    return script


brush_sweep = Scenario(
    name="brush-sweep",
    script=brush_sweep_script(0),
    description="4-wide window swept across 64 positions of dim0",
)


def _renumber(commands: Iterable[Command]) -> Iterator[Command]:
    """Rewrite ``seq`` so it strictly increases across ``commands``."""
    seq = 0
    for command in commands:
        if command_seq(command) is None:
            yield command
            continue
        yield dataclasses.replace(command, seq=seq)
        seq += 1


def concat(name: str, *scenarios: Scenario) -> Scenario:
    """Run ``scenarios`` back to back."""

    def script() -> Iterator[Command]:
        def chained() -> Iterator[Command]:
            for scenario in scenarios:
                yield from scenario.script()

        return _renumber(chained())

    return Scenario(
        name=name,
        script=script,
        description=" + ".join(s.name for s in scenarios),
        stateful=any(s.stateful for s in scenarios),
    )


def round_robin(name: str, *scenarios: Scenario) -> Scenario:
    """Interleave ``scenarios`` one command at a time until all are exhausted."""

    def script() -> Iterator[Command]:
        def interleaved() -> Iterator[Command]:
            active = [s.script() for s in scenarios]
            while active:
                still_active = []
                for it in active:
                    command = next(it, None)
                    if command is None:
                        continue
                    yield command
                    still_active.append(it)
                active = still_active

        return _renumber(interleaved())

    return Scenario(
        name=name,
        script=script,
        description=" | ".join(s.name for s in scenarios),
        stateful=any(s.stateful for s in scenarios),
    )


class ScenarioRegistry:
    """Registry of named scenarios."""

    def __init__(self, scenarios: Iterable[Scenario] = ()) -> None:
        self._scenarios: dict[str, Scenario] = {}
        for scenario in scenarios:
            self.register(scenario)

    def register(self, scenario: Scenario) -> None:
        """Register a scenario, replacing any scenario with the same name."""
        self._scenarios[scenario.name] = scenario

    def get(self, name: str) -> Scenario | None:
        return self._scenarios.get(name)

    def list_scenarios(self) -> list[Scenario]:
        return [self._scenarios[name] for name in sorted(self._scenarios)]

    def names(self) -> list[str]:
        return sorted(self._scenarios)

    def count(self) -> int:
        return len(self._scenarios)

    def clear(self) -> None:
        self._scenarios.clear()


def default_registry() -> ScenarioRegistry:
    """Registry preloaded with the built-in scenarios."""
    multi = round_robin(
        "multi-sweep",
        *(
            Scenario(name=f"brush-sweep-dim{d}", script=brush_sweep_script(d))
            for d in range(3)
        ),
    )
    return ScenarioRegistry([brush_sweep, multi])
