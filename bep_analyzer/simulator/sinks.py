"""Byte sinks for the stream simulator.

All sinks implement the ``ByteSink`` protocol.  ``write`` always accepts
the bytes it is given, and returns False when the sink is now saturated;
the writer must then call ``wait_drained`` before writing again.  That
keeps the amount of unconsumed data bounded by the sink's high-water mark
plus one record.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_HIGH_WATER_MARK = 64 * 1024


@runtime_checkable
class ByteSink(Protocol):
    """Protocol for an appendable, backpressure-signalling byte sink.

    Attributes
    ----------
    sink_name : str
        A short human-readable identifier (``"file"``, ``"buffer"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the name of this sink."""
        ...

    def write(self, data: bytes) -> bool:
        """Append *data*; return False if the writer should wait for a drain."""
        ...

    def wait_drained(self) -> None:
        """Block until the sink can accept more data."""
        ...

    def close(self) -> None:
        """Flush and release any underlying resource."""
        ...


class FileSink:
    """Appends records to a file, flushing after each write.

    Parameters
    ----------
    path:
        Target file.  Its parent directory is created if needed.
    truncate:
        Empty the file first, so a tailer following it starts from scratch.
    """

    def __init__(self, path: Path | str, *, truncate: bool = True) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if truncate:
            self.path.write_bytes(b"")
        self._handle: BinaryIO | None = open(self.path, "ab")
        self.bytes_written = 0

    @property
    def sink_name(self) -> str:
        return "file"

    def write(self, data: bytes) -> bool:
        if self._handle is None:
            raise ValueError(f"FileSink for {self.path} is closed")
        self._handle.write(data)
        self._handle.flush()
        self.bytes_written += len(data)
        return True

    def wait_drained(self) -> None:
        """Writes are flushed synchronously; nothing to wait for."""

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug("FileSink: wrote %d bytes to %s", self.bytes_written, self.path)


class BufferedSink:
    """Bounded in-memory sink drained by a consumer thread.

    ``write`` reports saturation once the buffered size reaches
    *high_water_mark*; ``wait_drained`` blocks until a consumer has
    ``read`` it back below the mark (or the sink is closed).
    """

    def __init__(self, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        if high_water_mark <= 0:
            raise ValueError("high_water_mark must be positive")
        self.high_water_mark = high_water_mark
        self._chunks: list[bytes] = []
        self._size = 0
        self._closed = False
        self._condition = threading.Condition()
        self.saturation_count = 0

    @property
    def sink_name(self) -> str:
        return "buffer"

    @property
    def buffered_bytes(self) -> int:
        with self._condition:
            return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> bool:
        with self._condition:
            if self._closed:
                raise ValueError("BufferedSink is closed")
            self._chunks.append(data)
            self._size += len(data)
            self._condition.notify_all()
            if self._size >= self.high_water_mark:
                self.saturation_count += 1
                return False
            return True

    def wait_drained(self) -> None:
        with self._condition:
            while self._size >= self.high_water_mark and not self._closed:
                self._condition.wait()

    def read(self, timeout: float | None = None) -> bytes:
        """Take everything buffered, waiting up to *timeout* for data.

        Returns ``b""`` on timeout or once the sink is closed and empty.
        """
        with self._condition:
            if not self._chunks and not self._closed:
                self._condition.wait(timeout)
            data = b"".join(self._chunks)
            self._chunks.clear()
            self._size = 0
            self._condition.notify_all()
            return data

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()
