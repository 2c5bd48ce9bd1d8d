"""Replay timeline reconstruction.

A completed event log does not carry a timestamp on every event, and the
ones it does carry are not guaranteed to be non-decreasing in file order.
Each record gets a best-effort timestamp (its own, else the last one seen,
else zero) and the list is then stably sorted by it.  That sorted order is
the authoritative replay order, which may differ from file order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from google.protobuf.message import Message
from pydantic import BaseModel, ConfigDict

from bep_analyzer.core.decoder import (
    DecodedRecord,
    EventDecoder,
    StreamDecodeError,
    WireFormat,
)
from bep_analyzer.core.fields import as_int, millis_field, timestamp_ms
from bep_analyzer.models.events import BuildEvent, EventKind

logger = logging.getLogger(__name__)


class ReplayRecord(BaseModel):
    """One record scheduled for replay."""

    model_config = ConfigDict(frozen=True)

    line: str
    timestamp_ms: int = 0
    source_index: int = 0


def derive_timestamp(event: BuildEvent | None) -> int | None:
    """Best-effort wall-clock time of *event* in epoch ms, or None.

    Lifecycle events use their start/finish time; an action-completed event
    uses ``startTimeMillis + wallTimeMillis`` of its execution info, or its
    ``endTime``.  Zero counts as missing.
    """
    if event is None or event.payload is None:
        return None
    payload = event.payload

    if event.kind is EventKind.BUILD_STARTED:
        return millis_field(payload, "startTimeMillis", "startTime") or None

    if event.kind is EventKind.BUILD_FINISHED:
        return millis_field(payload, "finishTimeMillis", "finishTime") or None

    if event.kind is EventKind.ACTION_COMPLETED:
        info = (payload.get("actionResult") or {}).get("executionInfo") or {}
        start = as_int(info.get("startTimeMillis"))
        wall = as_int(info.get("wallTimeMillis"))
        if start and wall:
            return start + wall
        return timestamp_ms(payload.get("endTime")) or None

    return None


def build_timeline(
    records: Iterable[tuple[str, BuildEvent | None]],
) -> list[ReplayRecord]:
    """Assign a timestamp to every ``(line, event)`` pair and sort stably.

    Records without a timestamp inherit the last known one, else zero.  If
    the very first record got zero but a timestamp was found later, it takes
    the first known timestamp so the replay does not open with a long gap.
    """
    timeline: list[ReplayRecord] = []
    first_known: int | None = None
    last_known: int | None = None

    for index, (line, event) in enumerate(records):
        timestamp = derive_timestamp(event)
        if timestamp is not None:
            if first_known is None:
                first_known = timestamp
            last_known = timestamp
        elif last_known is not None:
            timestamp = last_known
        else:
            timestamp = 0
        timeline.append(ReplayRecord(line=line, timestamp_ms=timestamp, source_index=index))

    if timeline and timeline[0].timestamp_ms == 0 and first_known is not None:
        timeline[0] = timeline[0].model_copy(update={"timestamp_ms": first_known})

    # sorted() is stable: equal timestamps keep file order
    return sorted(timeline, key=lambda record: record.timestamp_ms)


def load_timeline(
    path: Path | str,
    wire_format: WireFormat | str = WireFormat.JSON,
    *,
    message_class: type[Message] | None = None,
    proto_module: str = "build_event_stream_pb2",
    proto_message: str = "BuildEvent",
) -> list[ReplayRecord]:
    """Decode a completed log into a replay timeline.

    A corrupt binary record ends decoding; the records before it are still
    replayed, with a warning.
    """
    decoder = EventDecoder(
        wire_format,
        message_class=message_class,
        proto_module=proto_module,
        proto_message=proto_message,
    )
    pairs: list[tuple[str, BuildEvent | None]] = []
    with open(path, "rb") as source:
        try:
            for record in decoder.iter_records(source):
                pairs.append((record.to_json_line(), _normalize_quietly(record)))
        except StreamDecodeError as exc:
            logger.warning(
                "Stopped reading %s after %d records: %s", path, len(pairs), exc
            )
    return build_timeline(pairs)


def _normalize_quietly(record: DecodedRecord) -> BuildEvent | None:
    # Records without an id are still replayed verbatim, just without a time
    if not isinstance(record.data.get("id"), dict):
        return None
    return EventDecoder.normalize(record)
