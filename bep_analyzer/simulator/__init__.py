"""Replay of completed event logs into a live sink."""

from bep_analyzer.simulator.simulator import StreamSimulator
from bep_analyzer.simulator.sinks import BufferedSink, ByteSink, FileSink
from bep_analyzer.simulator.timeline import (
    ReplayRecord,
    build_timeline,
    derive_timestamp,
    load_timeline,
)

__all__ = [
    "BufferedSink",
    "ByteSink",
    "FileSink",
    "ReplayRecord",
    "StreamSimulator",
    "build_timeline",
    "derive_timestamp",
    "load_timeline",
]
