"""EventDecoder — bytes to normalized ``BuildEvent``s, for both wire formats.

JSON mode
    One JSON object per line.  Blank lines are skipped; a line that does
    not parse is logged (truncated) and skipped.  The stream never aborts.

Binary mode
    A varint length prefix followed by exactly that many bytes of one
    serialized ``BuildEvent`` protobuf message, repeated.  Binary streams
    cannot resynchronize after corruption, so any framing or parse failure
    raises ``StreamDecodeError`` and ends the stream there.  Events yielded
    before the failure stay valid.

The protobuf message class is generated from the build tool's own
``build_event_stream.proto`` and is looked up by module and class name.
"""

from __future__ import annotations

import importlib
import json
import logging
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO

from google.protobuf import json_format
# protobuf has no public varint reader; pyproject pins the releases
# whose internal decoder ships this one
from google.protobuf.internal.decoder import _DecodeVarint32
from google.protobuf.message import DecodeError, Message
from pydantic import BaseModel, ConfigDict

from bep_analyzer.core.normalizer import MalformedEventError, normalize_event
from bep_analyzer.models.events import BuildEvent

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 100
_MAX_VARINT_BYTES = 10
_READ_CHUNK = 1 << 20


class WireFormat(str, Enum):
    JSON = "json"
    BINARY = "pb"


class StreamDecodeError(RuntimeError):
    """Raised when a binary stream is corrupt; fatal for the remaining stream."""


class DecoderConfigError(RuntimeError):
    """Raised when the protobuf message class cannot be loaded."""


class DecodedRecord(BaseModel):
    """A raw decoded record, before normalization.

    ``line`` holds the verbatim source text in JSON mode so the simulator
    can replay it byte-for-byte.
    """

    model_config = ConfigDict(frozen=True)

    data: dict[str, Any]
    line: str | None = None

    def to_json_line(self) -> str:
        if self.line is not None:
            return self.line
        return json.dumps(self.data, separators=(",", ":"))


def load_message_class(module_name: str, class_name: str = "BuildEvent") -> type[Message]:
    """Import a generated protobuf message class by name."""
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise DecoderConfigError(
            f"Cannot import protobuf module {module_name!r}. Generate it from the "
            f"build tool's build_event_stream.proto with protoc and put it on "
            f"PYTHONPATH, or set BEP_ANALYZER_PROTO_MODULE."
        ) from exc
    try:
        return getattr(module, class_name)
    except AttributeError as exc:
        raise DecoderConfigError(
            f"Module {module_name!r} has no message class {class_name!r}"
        ) from exc


def _read_varint_bytes(source: BinaryIO) -> bytes:
    """Read one varint's bytes from *source*; empty at a clean end of stream."""
    prefix = bytearray()
    while len(prefix) < _MAX_VARINT_BYTES:
        byte = source.read(1)
        if not byte:
            break
        prefix += byte
        if not byte[0] & 0x80:
            break
    return bytes(prefix)


def _read_exactly(source: BinaryIO, size: int) -> bytes:
    """Read up to *size* bytes in bounded chunks; shorter only at end of stream."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = source.read(min(remaining, _READ_CHUNK))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def parse_json_line(line: str) -> dict[str, Any] | None:
    """Parse one JSON line; returns None (after logging) if it is malformed."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        logger.warning(
            "Could not parse line: %s... (%s)", line[:_PREVIEW_CHARS], exc.msg
        )
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping non-object record: %s...", line[:_PREVIEW_CHARS])
        return None
    return data


class EventDecoder:
    """Decodes a byte source into a lazy sequence of events.

    Parameters
    ----------
    wire_format:
        ``WireFormat.JSON`` or ``WireFormat.BINARY``.
    message_class:
        Protobuf message class for binary mode.  When omitted it is loaded
        lazily from *proto_module* / *proto_message*.
    """

    def __init__(
        self,
        wire_format: WireFormat | str = WireFormat.JSON,
        *,
        message_class: type[Message] | None = None,
        proto_module: str = "build_event_stream_pb2",
        proto_message: str = "BuildEvent",
    ) -> None:
        self.wire_format = WireFormat(wire_format)
        self._message_class = message_class
        self._proto_module = proto_module
        self._proto_message = proto_message

    @property
    def message_class(self) -> type[Message]:
        if self._message_class is None:
            self._message_class = load_message_class(
                self._proto_module, self._proto_message
            )
        return self._message_class

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def iter_records(self, source: BinaryIO) -> Iterator[DecodedRecord]:
        """Yield raw records from *source* in stream order."""
        if self.wire_format is WireFormat.JSON:
            yield from self._iter_json(source)
        else:
            yield from self._iter_binary(source)

    def _iter_json(self, source: BinaryIO) -> Iterator[DecodedRecord]:
        for raw in source:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            data = parse_json_line(line)
            if data is not None:
                yield DecodedRecord(data=data, line=line)

    def _iter_binary(self, source: BinaryIO) -> Iterator[DecodedRecord]:
        message_class = self.message_class
        pos = 0
        index = 0
        while True:
            prefix = _read_varint_bytes(source)
            if not prefix:
                return
            try:
                size, _ = _DecodeVarint32(prefix, 0)
            except (IndexError, DecodeError) as exc:
                raise StreamDecodeError(
                    f"Truncated length prefix for record {index} at byte {pos}"
                ) from exc
            payload = _read_exactly(source, size)
            if len(payload) < size:
                raise StreamDecodeError(
                    f"Record {index} at byte {pos} declares {size} bytes but only "
                    f"{len(payload)} remain"
                )
            message = message_class()
            try:
                message.ParseFromString(payload)
            except DecodeError as exc:
                raise StreamDecodeError(
                    f"Cannot decode record {index} at byte {pos}: {exc}"
                ) from exc
            yield DecodedRecord(data=json_format.MessageToDict(message))
            pos += len(prefix) + size
            index += 1

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def iter_events(self, source: BinaryIO) -> Iterator[BuildEvent]:
        """Yield normalized events; records without an ``id`` are skipped."""
        for record in self.iter_records(source):
            event = self.normalize(record)
            if event is not None:
                yield event

    def decode_path(self, path: Path | str) -> Iterator[BuildEvent]:
        """Open *path* and yield its events.  Restart by calling again."""
        with open(path, "rb") as source:
            yield from self.iter_events(source)

    @staticmethod
    def normalize(record: DecodedRecord) -> BuildEvent | None:
        try:
            return normalize_event(record.data)
        except MalformedEventError as exc:
            preview = record.to_json_line()[:_PREVIEW_CHARS]
            logger.warning("Skipping record: %s (%s...)", exc, preview)
            return None

    def decode_line(self, line: str) -> BuildEvent | None:
        """Decode a single JSON line (used by the live path)."""
        if not line.strip():
            return None
        data = parse_json_line(line)
        if data is None:
            return None
        return self.normalize(DecodedRecord(data=data, line=line))
