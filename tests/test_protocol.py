"""Tests for protocol commands and sequence ordering."""

import pytest

from filterbench.errors import ProtocolViolation, UnknownCommand
from filterbench.protocol import (
    BuildIndex,
    FilterClear,
    FilterSet,
    SequenceGuard,
    decode_command,
    encode_command,
    validate_command,
)


class TestWireFormat:
    def test_filter_set_encoding(self):
        assert encode_command(FilterSet(dim_id=2, lo=1.5, hi=3.0, seq=7)) == {
            "t": "FILTER_SET",
            "dimId": 2,
            "lo": 1.5,
            "hi": 3.0,
            "seq": 7,
        }

    def test_filter_clear_encoding(self):
        assert encode_command(FilterClear(dim_id="dim0", seq=1)) == {
            "t": "FILTER_CLEAR",
            "dimId": "dim0",
            "seq": 1,
        }

    def test_build_index_has_no_seq(self):
        assert encode_command(BuildIndex(dim_id=0)) == {"t": "BUILD_INDEX", "dimId": 0}

    def test_decode(self):
        command = decode_command({"t": "FILTER_SET", "dimId": 0, "lo": 0, "hi": 4, "seq": 3})
        assert command == FilterSet(dim_id=0, lo=0, hi=4, seq=3)

    def test_decode_unknown_tag(self):
        with pytest.raises(UnknownCommand):
            decode_command({"t": "FILTER_TOGGLE", "dimId": 0})

    def test_decode_missing_field(self):
        with pytest.raises(UnknownCommand, match="seq"):
            decode_command({"t": "FILTER_CLEAR", "dimId": 0})

    def test_decode_non_mapping(self):
        with pytest.raises(UnknownCommand):
            decode_command(["FILTER_SET"])

    def test_validate_rejects_foreign_objects(self):
        with pytest.raises(UnknownCommand):
            validate_command({"t": "FILTER_SET"})


class TestSequenceGuard:
    def test_increasing_accepted(self):
        guard = SequenceGuard()
        for seq in range(5):
            guard.check(FilterSet(dim_id=0, lo=0, hi=1, seq=seq))
        assert guard.last_seq == 4

    def test_equal_seq_accepted(self):
        guard = SequenceGuard()
        guard.check(FilterSet(dim_id=0, lo=0, hi=1, seq=3))
        guard.check(FilterClear(dim_id=0, seq=3))
        assert guard.last_seq == 3

    def test_decrease_rejected(self):
        guard = SequenceGuard()
        guard.check(FilterSet(dim_id=0, lo=0, hi=1, seq=5))
        with pytest.raises(ProtocolViolation):
            guard.check(FilterSet(dim_id=0, lo=0, hi=1, seq=4))

    def test_unsequenced_commands_pass(self):
        guard = SequenceGuard()
        guard.check(FilterSet(dim_id=0, lo=0, hi=1, seq=5))
        guard.check(BuildIndex(dim_id=0))
        assert guard.last_seq == 5

    def test_reset(self):
        guard = SequenceGuard()
        guard.check(FilterClear(dim_id=0, seq=9))
        guard.reset()
        guard.check(FilterClear(dim_id=0, seq=0))
        assert guard.last_seq == 0
