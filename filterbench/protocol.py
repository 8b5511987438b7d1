"""Command protocol exchanged between a driver and the engine worker.

Commands are frozen dataclasses tagged by a ``t`` class attribute and
encode to the wire shape ``{"t": "FILTER_SET", "dimId": ..., ...}``.
Unknown tags are rejected with ``UnknownCommand``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .errors import ProtocolViolation, UnknownCommand

DimId = Union[int, str]


@dataclass(frozen=True)
class FilterSet:
    """Restrict dimension ``dim_id`` to ``[lo, hi)``."""

    t: ClassVar[str] = "FILTER_SET"

    dim_id: DimId
    lo: float
    hi: float
    seq: int

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "dimId": self.dim_id, "lo": self.lo, "hi": self.hi, "seq": self.seq}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterSet:
        return cls(dim_id=data["dimId"], lo=data["lo"], hi=data["hi"], seq=data["seq"])


@dataclass(frozen=True)
class FilterClear:
    """Drop the filter on dimension ``dim_id``."""

    t: ClassVar[str] = "FILTER_CLEAR"

    dim_id: DimId
    seq: int

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "dimId": self.dim_id, "seq": self.seq}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterClear:
        return cls(dim_id=data["dimId"], seq=data["seq"])


@dataclass(frozen=True)
class BuildIndex:
    """Build the sorted index for dimension ``dim_id``. Carries no sequence number."""

    t: ClassVar[str] = "BUILD_INDEX"

    dim_id: DimId

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "dimId": self.dim_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildIndex:
        return cls(dim_id=data["dimId"])


Command = Union[FilterSet, FilterClear, BuildIndex]

COMMAND_TYPES: dict[str, type] = {
    FilterSet.t: FilterSet,
    FilterClear.t: FilterClear,
    BuildIndex.t: BuildIndex,
}


def validate_command(command: Any) -> Command:
    """Return ``command`` if it is a known protocol command, else raise."""
    tag = getattr(command, "t", None)
    if COMMAND_TYPES.get(tag) is not type(command):
        raise UnknownCommand(f"Unknown command: {command!r}", tag=tag)
    return command


def encode_command(command: Command) -> dict[str, Any]:
    return validate_command(command).to_dict()


def decode_command(data: dict[str, Any]) -> Command:
    """Decode a wire message into a command.

    Raises:
        UnknownCommand: When the tag is not defined or a field is missing.
    """
    tag = data.get("t") if isinstance(data, dict) else None
    command_type = COMMAND_TYPES.get(tag)
    if command_type is None:
        raise UnknownCommand(f"Unknown command tag: {tag!r}", tag=tag)
    try:
        return command_type.from_dict(data)
    except KeyError as e:
        raise UnknownCommand(f"{tag} is missing field {e.args[0]!r}", tag=tag) from e


def command_seq(command: Command) -> int | None:
    return getattr(command, "seq", None)


class SequenceGuard:
    """Rejects commands whose ``seq`` goes backwards.

    Equal sequence numbers are accepted; commands without a ``seq`` pass
    through without changing the high-water mark.
    """

    def __init__(self) -> None:
        self._last: int | None = None

    @property
    def last_seq(self) -> int | None:
        return self._last

    def check(self, command: Command) -> None:
        seq = command_seq(command)
        if seq is None:
            return
        if self._last is not None and seq < self._last:
            raise ProtocolViolation(
                f"{command.t} seq={seq} arrived after seq={self._last}",
                seq=seq,
                last_seq=self._last,
            )
        self._last = seq

    def reset(self) -> None:
        self._last = None
