"""Tests for scenario scripts and the scenario registry."""

from itertools import islice

from filterbench.protocol import FilterSet, command_seq
from filterbench.scenarios import (
    Scenario,
    ScenarioRegistry,
    brush_sweep,
    brush_sweep_script,
    concat,
    default_registry,
    round_robin,
)


class TestBrushSweep:
    def test_sixty_four_commands(self):
        commands = list(brush_sweep.script())
        assert len(commands) == 64
        assert all(isinstance(c, FilterSet) for c in commands)

    def test_sequence_and_window(self):
        commands = list(brush_sweep.script())
        assert [c.seq for c in commands] == list(range(64))
        assert all(c.hi - c.lo == 4 for c in commands)
        assert {c.dim_id for c in commands} == {0}
        assert commands[0].lo == 0
        assert commands[-1].lo == 63

    def test_script_restarts(self):
        first = list(islice(brush_sweep.script(), 3))
        second = list(islice(brush_sweep.script(), 3))
        assert first == second
        assert not brush_sweep.stateful

    def test_custom_dimension(self):
        commands = list(brush_sweep_script("dim2", steps=5, width=10)())
        assert len(commands) == 5
        assert all(c.dim_id == "dim2" and c.hi - c.lo == 10 for c in commands)


class TestComposition:
    def _scenario(self, dim, steps):
        return Scenario(name=f"s{dim}", script=brush_sweep_script(dim, steps=steps))

    def test_concat_renumbers(self):
        combined = concat("both", self._scenario(0, 3), self._scenario(1, 2))
        commands = list(combined.script())
        assert [c.dim_id for c in commands] == [0, 0, 0, 1, 1]
        assert [command_seq(c) for c in commands] == [0, 1, 2, 3, 4]

    def test_round_robin_interleaves(self):
        combined = round_robin("rr", self._scenario(0, 3), self._scenario(1, 1))
        commands = list(combined.script())
        assert [c.dim_id for c in commands] == [0, 1, 0, 0]
        seqs = [command_seq(c) for c in commands]
        assert all(b > a for a, b in zip(seqs, seqs[1:]))

    def test_stateful_propagates(self):
        plain = self._scenario(0, 2)
        shared = brush_sweep_script(1, steps=2)()
        resumable = Scenario(name="resumable", script=lambda: shared, stateful=True)
        assert concat("c", plain, resumable).stateful
        assert round_robin("rr", resumable, plain).stateful
        assert not concat("c", plain, self._scenario(1, 1)).stateful
        assert not round_robin("rr", plain, self._scenario(1, 1)).stateful

    def test_stateful_concat_resumes_its_source(self):
        shared = brush_sweep_script(0, steps=4)()
        resumable = Scenario(name="resumable", script=lambda: shared, stateful=True)
        combined = concat("c", resumable, self._scenario(1, 1))
        assert [c.dim_id for c in islice(combined.script(), 2)] == [0, 0]
        # The shared source already gave up its first two commands
        assert [c.dim_id for c in combined.script()] == [0, 0, 1]



class TestRegistry:
    def test_register_and_get(self):
        registry = ScenarioRegistry()
        registry.register(brush_sweep)
        assert registry.get("brush-sweep") is brush_sweep
        assert registry.get("missing") is None
        assert registry.count() == 1

    def test_clear(self):
        registry = ScenarioRegistry([brush_sweep])
        registry.clear()
        assert registry.count() == 0

    def test_default_registry(self):
        registry = default_registry()
        assert "brush-sweep" in registry.names()
        multi = registry.get("multi-sweep")
        assert multi is not None
        commands = list(multi.script())
        assert len(commands) == 3 * 64
        assert {c.dim_id for c in commands} == {0, 1, 2}
