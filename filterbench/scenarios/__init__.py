"""Scripted command sequences used to drive the engine."""

from .registry import (
    Scenario,
    ScenarioRegistry,
    brush_sweep,
    brush_sweep_script,
    concat,
    default_registry,
    round_robin,
)

__all__ = [
    "Scenario",
    "ScenarioRegistry",
    "brush_sweep",
    "brush_sweep_script",
    "concat",
    "default_registry",
    "round_robin",
]
