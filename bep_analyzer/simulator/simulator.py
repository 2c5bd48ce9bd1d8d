"""StreamSimulator — replays a completed event log with reconstructed pacing.

Two pacing modes:

- timestamp mode (default): the delay before each record is the gap to the
  previous record's derived timestamp divided by ``speed_factor``, clamped
  to ``max_delay_ms``.  The first record is written immediately.
- interval mode (``interval_ms > 0``): a fixed delay before every record,
  ignoring timestamps.

Each record is written as one JSON line.  When the sink reports that it is
saturated, the simulator waits for it to drain before the next record.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Sequence

from bep_analyzer.simulator.sinks import ByteSink
from bep_analyzer.simulator.timeline import ReplayRecord

logger = logging.getLogger(__name__)


class StreamSimulator:
    """Writes a replay timeline into a ``ByteSink``.

    Parameters
    ----------
    sink:
        Where records go.
    speed_factor:
        Playback speed; ``2.0`` is twice as fast, ``math.inf`` removes
        every timestamp delay.
    max_delay_ms:
        Upper bound on any single delay in timestamp mode.
    interval_ms:
        When positive, use this fixed delay instead of timestamps.
    sleep:
        Called with a delay in seconds.  Defaults to an interruptible wait,
        so ``stop()`` cuts a pending delay short.
    on_record:
        Called after each record has been written (progress reporting).
    """

    def __init__(
        self,
        sink: ByteSink,
        *,
        speed_factor: float = 1.0,
        max_delay_ms: float = math.inf,
        interval_ms: float = 0.0,
        sleep: Callable[[float], None] | None = None,
        on_record: Callable[[ReplayRecord], None] | None = None,
    ) -> None:
        if speed_factor <= 0:
            raise ValueError("speed_factor must be positive")
        if max_delay_ms < 0:
            raise ValueError("max_delay_ms must not be negative")
        self.sink = sink
        self.speed_factor = speed_factor
        self.max_delay_ms = max_delay_ms
        self.interval_ms = interval_ms
        self._stop_event = threading.Event()
        self._sleep = sleep if sleep is not None else self._interruptible_sleep
        self._on_record = on_record
        self.records_written = 0
        self.backpressure_waits = 0

    @property
    def interval_mode(self) -> bool:
        return self.interval_ms > 0

    def stop(self) -> None:
        """Stop after the record currently being written."""
        self._stop_event.set()

    def _interruptible_sleep(self, seconds: float) -> None:
        self._stop_event.wait(seconds)

    def compute_delays(self, timeline: Sequence[ReplayRecord]) -> list[float]:
        """Delay in milliseconds before each record of *timeline*."""
        if self.interval_mode:
            return [float(self.interval_ms)] * len(timeline)

        delays: list[float] = []
        previous = timeline[0].timestamp_ms if timeline else 0
        for record in timeline:
            delta = record.timestamp_ms - previous
            delay = delta / self.speed_factor if delta > 0 else 0.0
            delays.append(min(delay, self.max_delay_ms))
            previous = record.timestamp_ms
        return delays

    def replay(self, timeline: Sequence[ReplayRecord]) -> int:
        """Write every record of *timeline* in order; returns how many were written."""
        if not timeline:
            logger.warning("Nothing to replay: the timeline is empty")
            return 0

        logger.info(
            "Replaying %d records (%s)",
            len(timeline),
            f"interval {self.interval_ms}ms"
            if self.interval_mode
            else f"speed {self.speed_factor}x, max delay {self.max_delay_ms}ms",
        )
        for record, delay_ms in zip(timeline, self.compute_delays(timeline)):
            if self._stop_event.is_set():
                break
            if delay_ms > 0:
                self._sleep(delay_ms / 1000.0)
                if self._stop_event.is_set():
                    break

            ready = self.sink.write(record.line.encode("utf-8") + b"\n")
            self.records_written += 1
            if self._on_record is not None:
                self._on_record(record)
            if not ready:
                self.backpressure_waits += 1
                self.sink.wait_drained()

        return self.records_written
