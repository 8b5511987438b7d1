"""Engine control facade, quiescence barrier and the sandbox engine.

The harness only talks to an engine through ``EngineHandle``; any
factory with the ``EngineFactory`` signature can be benchmarked.
"""

from .barrier import IdleBarrier
from .base import (
    DimensionHandle,
    EngineFactory,
    EngineHandle,
    IndexStatus,
    ShardMetrics,
    ShardSample,
)
from .sandbox import SandboxHandle, create

__all__ = [
    "DimensionHandle",
    "EngineFactory",
    "EngineHandle",
    "IdleBarrier",
    "IndexStatus",
    "SandboxHandle",
    "ShardMetrics",
    "ShardSample",
    "create",
]
