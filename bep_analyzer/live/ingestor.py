"""LiveIngestor — real-time state machine over a growing event file.

Every line goes through the same decoder normalization and the same
``StateAccumulator`` as a static analysis, so at any point the live state
equals a static replay of the lines seen so far.  On top of that the
ingestor keeps a short recent-activity ring and the latest progress block,
and drives a fixed-rate render tick from a timer thread, independent of
event arrival.

States: ``WAITING_FOR_SOURCE -> RUNNING -> FINISHED``.  The first decoded
event moves to RUNNING; a build-finished event (or any event flagged as
the last message) moves to FINISHED, after which lines are ignored and
ticks are no-ops.  ``stop()`` moves to FINISHED from any state.

The event path and the timer share one re-entrant lock; render modes only
ever see a frozen ``LiveView``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

from bep_analyzer.core.accumulator import StateAccumulator
from bep_analyzer.core.decoder import EventDecoder, WireFormat
from bep_analyzer.core.progress_parser import parse_progress_text, strip_ansi
from bep_analyzer.live.modes import SPINNER_FRAMES, RenderMode
from bep_analyzer.live.tailer import FileTailer
from bep_analyzer.models.build import Action, ActionDetailPolicy
from bep_analyzer.models.events import BuildEvent, EventKind
from bep_analyzer.models.live import VALID_TRANSITIONS, LiveState, LiveView
from bep_analyzer.models.progress import ProgressInfo
from bep_analyzer.models.snapshot import ReportSnapshot

logger = logging.getLogger(__name__)

STDERR_PREVIEW_LINES = 3
STDERR_TRUNCATED_MARKER = "... (full stderr in final report)"


class InvalidTransitionError(RuntimeError):
    """Raised when a requested live state transition is not valid."""


class LiveIngestor:
    """Drives a render mode from a live event stream.

    Parameters
    ----------
    mode:
        The render mode, chosen once for the whole session.
    action_details:
        Detail policy handed to the accumulator.
    recent_activity_limit:
        Size of the recent-activity ring.
    running_actions_limit:
        Maximum running actions kept from a progress frame.
    refresh_hz:
        Render tick rate of the timer thread.
    poll_interval:
        Passed to the ``FileTailer`` by ``follow()``.
    clock:
        Monotonic time source, in seconds.  Injectable for tests.
    """

    def __init__(
        self,
        mode: RenderMode,
        *,
        action_details: ActionDetailPolicy | str = ActionDetailPolicy.FAILED,
        recent_activity_limit: int = 5,
        running_actions_limit: int = 5,
        refresh_hz: float = 10.0,
        poll_interval: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.mode = mode
        self.accumulator = StateAccumulator(action_details=action_details)
        self.decoder = EventDecoder(WireFormat.JSON)
        self.running_actions_limit = running_actions_limit
        self.tick_interval = 1.0 / max(refresh_hz, 0.1)
        self.poll_interval = poll_interval
        self._clock = clock

        self._lock = threading.RLock()
        self._state = LiveState.WAITING_FOR_SOURCE
        self._recent: deque[str] = deque(maxlen=recent_activity_limit)
        self._progress = ProgressInfo()
        self._ticks = 0
        self._created_at = clock()
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._cancelled = False
        self._actions_failed = 0

        self._timer: threading.Thread | None = None
        self._timer_stop = threading.Event()
        self._tailer: FileTailer | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> LiveState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def recent_activity(self) -> list[str]:
        with self._lock:
            return list(self._recent)

    @property
    def progress(self) -> ProgressInfo:
        return self._progress

    def _transition(self, target: LiveState) -> None:
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {self._state.value} to {target.value}. "
                f"Allowed: {[s.value for s in allowed]}"
            )
        logger.debug("Live state %s -> %s", self._state.value, target.value)
        self._state = target

    # ------------------------------------------------------------------
    # Event path
    # ------------------------------------------------------------------

    def feed_line(self, line: str) -> BuildEvent | None:
        """Decode and apply one line; returns the event, or None if skipped."""
        with self._lock:
            if self._state is LiveState.FINISHED:
                return None
            event = self.decoder.decode_line(line)
            if event is None:
                return None

            if self._state is LiveState.WAITING_FOR_SOURCE:
                self._transition(LiveState.RUNNING)
                self._started_at = self._clock()

            actions_before = len(self.accumulator.state.actions)
            self.accumulator.apply(event)
            self._track(event, actions_before)
            self.mode.on_event(event, self._view())

            if event.is_terminus:
                self._finish()
            return event

    def _track(self, event: BuildEvent, actions_before: int) -> None:
        if event.kind is EventKind.ACTION_COMPLETED:
            # A dropped malformed action adds nothing
            if len(self.accumulator.state.actions) > actions_before:
                action = self.accumulator.last_action
                if not action.success:
                    self._actions_failed += 1
                self._add_activity(self._describe_action(action))

        elif event.kind in (EventKind.PROBLEM, EventKind.ABORTED) and event.payload:
            text = event.payload.get("message") or event.payload.get("description") or ""
            first = str(text).strip().split("\n", 1)[0]
            if not first:
                first = str(event.payload.get("reason", ""))
            self._add_activity(f"Problem: {first}")

        elif event.kind is EventKind.PROGRESS and event.payload:
            text = str(event.payload.get("stderr") or event.payload.get("stdout") or "")
            if not text:
                return
            info = parse_progress_text(text, max_running=self.running_actions_limit)
            if info.total or info.running_actions:
                self._progress = info
            for log_line in info.log_lines:
                self._add_activity(strip_ansi(log_line).strip())

    @staticmethod
    def _describe_action(action: Action) -> str:
        if action.success:
            return f"✔ {action.label}"
        lines = [f"FAILED: {action.mnemonic} {action.label}"]
        if action.stderr_content:
            stderr_lines = [
                strip_ansi(line).rstrip()
                for line in action.stderr_content.strip().split("\n")
            ]
            lines.extend(stderr_lines[:STDERR_PREVIEW_LINES])
            if len(stderr_lines) > STDERR_PREVIEW_LINES:
                lines.append(STDERR_TRUNCATED_MARKER)
        return "\n".join(lines)

    def _add_activity(self, entry: str) -> None:
        if not entry:
            return
        if self._recent and self._recent[-1] == entry:
            return
        self._recent.append(entry)

    def _finish(self) -> None:
        self._transition(LiveState.FINISHED)
        self._finished_at = self._clock()
        self._timer_stop.set()
        if self._tailer is not None:
            self._tailer.stop()
        self.mode.on_finish(self._view())

    # ------------------------------------------------------------------
    # Render tick
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Advance the spinner and elapsed time and let the mode emit."""
        with self._lock:
            if self._state is LiveState.FINISHED:
                return
            self._ticks += 1
            self.mode.on_tick(self._view())

    def start(self) -> None:
        """Notify the mode and start the render timer thread."""
        with self._lock:
            if self._timer is not None or self._state is LiveState.FINISHED:
                return
            self.mode.on_start()
            self._timer_stop.clear()
            self._timer = threading.Thread(
                target=self._timer_loop, name="bep-live-tick", daemon=True
            )
            self._timer.start()

    def _timer_loop(self) -> None:
        while not self._timer_stop.wait(self.tick_interval):
            self.tick()

    def stop(self) -> None:
        """Cancel from any state: freeze the state, stop timer and tailer."""
        with self._lock:
            if self._state is not LiveState.FINISHED:
                self._cancelled = True
                self._finish()
            timer, self._timer = self._timer, None
        self._timer_stop.set()
        if self._tailer is not None:
            self._tailer.stop()
        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout=5.0)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else self._clock()
        return max(end - self._started_at, 0.0)

    def _view(self) -> LiveView:
        state = self.accumulator.state
        started = state.build_started
        finished = state.build_finished
        return LiveView(
            state=self._state,
            elapsed_seconds=self.elapsed_seconds(),
            spinner=SPINNER_FRAMES[self._ticks % len(SPINNER_FRAMES)],
            recent_activity=tuple(self._recent),
            progress=self._progress,
            actions_completed=len(state.actions),
            actions_failed=self._actions_failed,
            problem_count=len(state.problems),
            command=started.command if started is not None else "",
            cancelled=self._cancelled,
            overall_success=finished.overall_success if finished is not None else None,
        )

    def view(self) -> LiveView:
        with self._lock:
            return self._view()

    def snapshot(self, *, strict: bool = False) -> ReportSnapshot:
        """Freeze the accumulated state for a renderer."""
        with self._lock:
            return self.accumulator.snapshot(strict=strict)

    # ------------------------------------------------------------------
    # File following
    # ------------------------------------------------------------------

    def follow(self, path: Path | str) -> ReportSnapshot:
        """Tail *path* until the build finishes or ``stop()`` is called.

        Raises
        ------
        SourceUnavailableError
            If the file's directory does not exist.
        """
        self._tailer = FileTailer(path, poll_interval=self.poll_interval)
        lines = self._tailer.lines()
        self.start()
        try:
            for line in lines:
                self.feed_line(line)
                if self._state is LiveState.FINISHED:
                    break
        finally:
            lines.close()
            self.stop()
        return self.snapshot()
