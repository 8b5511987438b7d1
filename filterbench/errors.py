"""Error taxonomy for the benchmark harness.

Generator and protocol errors are raised immediately to the caller.
Idle timeouts are recovered per sample by the runner. Orchestration
errors propagate to the process boundary.
"""

from __future__ import annotations

from typing import Any


class FilterBenchError(Exception):
    """Base class for all harness errors."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class InvalidConfig(FilterBenchError, ValueError):
    """Bad generator or configuration parameters."""


class UnknownCommand(FilterBenchError, ValueError):
    """A command tag (or command shape) the protocol does not define."""


class ProtocolViolation(FilterBenchError):
    """Commands delivered out of sequence order."""


class IdleTimeout(FilterBenchError, TimeoutError):
    """The engine did not settle within the configured bound."""


class HandleClosed(FilterBenchError):
    """An operation was attempted on a disposed engine handle."""


class StepFailed(FilterBenchError):
    """A suite step exited non-zero or could not be started."""

    def __init__(self, label: str, reason: str, returncode: int | None = None) -> None:
        self.label = label
        self.reason = reason
        self.returncode = returncode
        super().__init__(f"{label} failed: {reason}", returncode=returncode)


class ReportFormatError(FilterBenchError, ValueError):
    """A report file matched neither the baseline nor the multi-filter shape."""


class UnknownDimension(FilterBenchError, KeyError):
    """A dimension name or index the ingested dataset does not have."""

    def __str__(self) -> str:
        return self.message
