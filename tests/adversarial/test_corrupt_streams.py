"""Adversarial tests — truncated and corrupt binary streams.

These tests verify that:
1. A corrupt record stops decoding with StreamDecodeError
2. Every event before the corruption has already been applied
3. Corruption at any byte offset is detected, never silently misread
"""

from __future__ import annotations

import io

import pytest
from google.protobuf import struct_pb2

from bep_analyzer.core.accumulator import StateAccumulator
from bep_analyzer.core.decoder import EventDecoder, StreamDecodeError, WireFormat

from conftest import to_binary_stream


def _decoder() -> EventDecoder:
    return EventDecoder(WireFormat.BINARY, message_class=struct_pb2.Struct)


class TestTruncatedBinary:
    """Truncation must fail loudly while preserving the decoded prefix."""

    def test_state_before_truncation_is_kept(self, bep):
        data = to_binary_stream([bep.started(), bep.action("//a"), bep.action("//b")])
        acc = StateAccumulator()
        with pytest.raises(StreamDecodeError):
            acc.apply_all(_decoder().iter_events(io.BytesIO(data[:-3])))
        assert acc.state.build_started is not None
        assert [a.label for a in acc.state.actions] == ["//a"]
        assert acc.state.events_applied == 2

    def test_every_cut_point_is_detected_or_clean(self, bep):
        """Cutting at a record boundary decodes cleanly; anywhere else raises."""
        records = [bep.started(), bep.action("//a"), bep.finished()]
        boundaries = {0}
        offset = 0
        for record in records:
            offset += len(to_binary_stream([record]))
            boundaries.add(offset)
        data = to_binary_stream(records)

        for cut in range(len(data) + 1):
            source = io.BytesIO(data[:cut])
            if cut in boundaries:
                list(_decoder().iter_records(source))
            else:
                with pytest.raises(StreamDecodeError):
                    list(_decoder().iter_records(source))

    def test_oversized_length_prefix(self, bep):
        # A varint claiming ~2 GiB followed by a handful of bytes
        data = to_binary_stream([bep.started()]) + b"\xff\xff\xff\xff\x07abc"
        acc = StateAccumulator()
        with pytest.raises(StreamDecodeError, match="declares"):
            acc.apply_all(_decoder().iter_events(io.BytesIO(data)))
        assert acc.state.build_started is not None

    def test_zero_length_record_is_an_empty_message(self, bep):
        data = b"\x00" + to_binary_stream([bep.started()])
        records = list(_decoder().iter_records(io.BytesIO(data)))
        assert records[0].data == {}
        # The empty record has no id and is skipped as an event
        events = list(_decoder().iter_events(io.BytesIO(data)))
        assert len(events) == 1
