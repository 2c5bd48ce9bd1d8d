"""FileTailer — yields complete lines from a file that is still being written.

The build tool creates the event file some time after it starts and then
appends to it.  The tailer waits for the file to appear, reads whatever is
there, and then blocks in watchfiles until the file changes (or the
poll timeout expires) before reading again.  Bytes after the last newline
stay pending until the rest of the line arrives; on stop they are dropped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from watchfiles import Change, watch

logger = logging.getLogger(__name__)


class SourceUnavailableError(RuntimeError):
    """Raised when the directory of the tailed file does not exist."""


class FileTailer:
    """Follows a growing newline-delimited file.

    Parameters
    ----------
    path:
        The file to follow.  It may not exist yet; its directory must.
    poll_interval:
        Seconds to wait for a filesystem notification before re-reading
        anyway.  Some filesystems (network mounts, containers) never notify.
    """

    def __init__(self, path: Path | str, *, poll_interval: float = 0.25) -> None:
        self.path = Path(path)
        self._resolved = self.path.resolve()
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._handle: BinaryIO | None = None
        self._pending = b""

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask ``lines()`` to finish; safe to call from any thread."""
        self._stop_event.set()

    def lines(self) -> Iterator[str]:
        """Yield each complete line (without its terminator) as it lands.

        Raises
        ------
        SourceUnavailableError
            If the parent directory of the file does not exist.
        """
        directory = self.path.parent
        if not directory.is_dir():
            raise SourceUnavailableError(f"Directory {directory} does not exist")

        try:
            yield from self._drain()
            if self.stopped:
                return
            timeout_ms = max(int(self.poll_interval * 1000), 1)
            # The file usually sits beside the bazel-* output trees
            for _changes in watch(
                directory,
                watch_filter=self._is_source,
                recursive=False,
                stop_event=self._stop_event,
                rust_timeout=timeout_ms,
                yield_on_timeout=True,
                debounce=timeout_ms,
                step=min(50, timeout_ms),
            ):
                yield from self._drain()
                if self.stopped:
                    return
        finally:
            self.close()

    def close(self) -> None:
        """Release the file handle and drop any partial line."""
        if self._pending:
            logger.debug("Discarding %d bytes of partial line", len(self._pending))
        self._pending = b""
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _is_source(self, _change: Change, path: str) -> bool:
        return Path(path).resolve() == self._resolved

    def _drain(self) -> Iterator[str]:
        if self._handle is None:
            if not self.path.exists():
                return
            self._handle = open(self.path, "rb")
            logger.debug("Opened %s for tailing", self.path)

        chunk = self._handle.read()
        if not chunk:
            return
        data = self._pending + chunk
        *complete, self._pending = data.split(b"\n")
        for raw in complete:
            if self.stopped:
                return
            yield raw.decode("utf-8", errors="replace").rstrip("\r")
