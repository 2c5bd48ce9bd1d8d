"""Tests for the LiveIngestor state machine."""

from __future__ import annotations

import json
import threading

import pytest

from bep_analyzer.live.ingestor import (
    STDERR_TRUNCATED_MARKER,
    InvalidTransitionError,
    LiveIngestor,
)
from bep_analyzer.live.modes import RenderMode
from bep_analyzer.models.events import BuildEvent, EventKind
from bep_analyzer.models.live import VALID_TRANSITIONS, LiveState, LiveView


class RecordingMode:
    """Render mode that records every call."""

    def __init__(self) -> None:
        self.started = 0
        self.events: list[tuple[EventKind, LiveView]] = []
        self.ticks: list[LiveView] = []
        self.finished: list[LiveView] = []

    @property
    def mode_name(self) -> str:
        return "recording"

    def on_start(self) -> None:
        self.started += 1

    def on_event(self, event: BuildEvent, view: LiveView) -> None:
        self.events.append((event.kind, view))

    def on_tick(self, view: LiveView) -> None:
        self.ticks.append(view)

    def on_finish(self, view: LiveView) -> None:
        self.finished.append(view)


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _line(record) -> str:
    return json.dumps(record)


@pytest.fixture
def mode() -> RecordingMode:
    return RecordingMode()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ingestor(mode: RecordingMode, clock: FakeClock) -> LiveIngestor:
    return LiveIngestor(mode, clock=clock)


# ---------------------------------------------------------------------------
# Test: transitions
# ---------------------------------------------------------------------------


class TestLiveTransitions:
    def test_recording_mode_satisfies_protocol(self, mode):
        assert isinstance(mode, RenderMode)

    def test_transition_table_is_terminal_at_finished(self):
        assert VALID_TRANSITIONS[LiveState.FINISHED] == set()

    def test_starts_waiting(self, ingestor):
        assert ingestor.state is LiveState.WAITING_FOR_SOURCE

    def test_first_event_moves_to_running(self, ingestor, bep):
        ingestor.feed_line(_line(bep.started()))
        assert ingestor.state is LiveState.RUNNING

    def test_garbage_does_not_start_the_session(self, ingestor):
        assert ingestor.feed_line("not json") is None
        assert ingestor.feed_line("") is None
        assert ingestor.state is LiveState.WAITING_FOR_SOURCE

    def test_build_finished_moves_to_finished(self, ingestor, mode, bep):
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(bep.finished()))
        assert ingestor.state is LiveState.FINISHED
        assert len(mode.finished) == 1
        assert mode.finished[0].overall_success is True

    def test_last_message_moves_to_finished(self, ingestor, bep):
        record = bep.progress("")
        record["lastMessage"] = True
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(record))
        assert ingestor.state is LiveState.FINISHED

    def test_lines_after_finished_are_ignored(self, ingestor, bep):
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(bep.finished()))
        assert ingestor.feed_line(_line(bep.action())) is None
        assert ingestor.snapshot().actions == ()

    def test_invalid_transition_raises(self, ingestor, bep):
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(bep.finished()))
        with pytest.raises(InvalidTransitionError, match="finished"):
            ingestor._transition(LiveState.RUNNING)


# ---------------------------------------------------------------------------
# Test: recent activity and progress
# ---------------------------------------------------------------------------


class TestRecentActivity:
    def test_successful_action(self, ingestor, bep):
        ingestor.feed_line(_line(bep.action("//app:main")))
        assert ingestor.recent_activity == ["✔ //app:main"]

    def test_failed_action_with_stderr_preview(self, ingestor, bep, tmp_path):
        stderr = tmp_path / "stderr"
        stderr.write_text("line1\nline2\nline3\nline4\nline5\n")
        ingestor.feed_line(
            _line(bep.action("//app:lib", success=False, mnemonic="CppCompile", stderr_uri=stderr.as_uri()))
        )
        (entry,) = ingestor.recent_activity
        assert entry.split("\n") == [
            "FAILED: CppCompile //app:lib",
            "line1",
            "line2",
            "line3",
            STDERR_TRUNCATED_MARKER,
        ]

    def test_short_stderr_has_no_marker(self, ingestor, bep, tmp_path):
        stderr = tmp_path / "stderr"
        stderr.write_text("only line\n")
        ingestor.feed_line(_line(bep.action("//app:lib", success=False, stderr_uri=stderr.as_uri())))
        assert ingestor.recent_activity == ["FAILED: CppCompile //app:lib\nonly line"]

    def test_problem_first_line(self, ingestor, bep):
        ingestor.feed_line(_line(bep.problem("ERROR: first\nsecond")))
        assert ingestor.recent_activity == ["Problem: ERROR: first"]

    def test_ring_is_bounded_to_five(self, ingestor, bep):
        for i in range(8):
            ingestor.feed_line(_line(bep.action(f"//app:t{i}")))
        assert ingestor.recent_activity == [f"✔ //app:t{i}" for i in range(3, 8)]

    def test_consecutive_duplicates_are_collapsed(self, ingestor, bep):
        warning = bep.progress("WARNING: flag --foo is deprecated")
        ingestor.feed_line(_line(warning))
        ingestor.feed_line(_line(warning))
        ingestor.feed_line(_line(bep.action("//a")))
        ingestor.feed_line(_line(warning))
        assert ingestor.recent_activity == [
            "WARNING: flag --foo is deprecated",
            "✔ //a",
            "WARNING: flag --foo is deprecated",
        ]

    def test_progress_block_is_tracked(self, ingestor, bep):
        ingestor.feed_line(_line(bep.progress("[4 / 8] Compiling a.cc; 2s local\n")))
        progress = ingestor.progress
        assert (progress.completed, progress.total) == (4, 8)
        assert progress.running_actions[0].description == "Compiling a.cc"

    def test_progress_without_counter_keeps_previous_block(self, ingestor, bep):
        ingestor.feed_line(_line(bep.progress("[4 / 8] Compiling a.cc; 2s local\n")))
        ingestor.feed_line(_line(bep.progress("INFO: nothing structured")))
        assert ingestor.progress.total == 8

    def test_running_actions_limit(self, mode, bep):
        ingestor = LiveIngestor(mode, running_actions_limit=2)
        text = "\n".join(f"Compiling f{i}.cc; {i}s local" for i in range(6))
        ingestor.feed_line(_line(bep.progress(text)))
        assert [a.elapsed_seconds for a in ingestor.progress.running_actions] == [5, 4]


# ---------------------------------------------------------------------------
# Test: ticks, timer, cancellation
# ---------------------------------------------------------------------------


class TestTickAndCancellation:
    def test_tick_advances_spinner_and_elapsed(self, ingestor, mode, clock, bep):
        ingestor.feed_line(_line(bep.started()))
        clock.now += 2.5
        ingestor.tick()
        clock.now += 1.0
        ingestor.tick()
        assert [round(v.elapsed_seconds, 1) for v in mode.ticks] == [2.5, 3.5]
        assert mode.ticks[0].spinner != mode.ticks[1].spinner

    def test_tick_is_noop_after_finished(self, ingestor, mode, bep):
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(bep.finished()))
        ingestor.tick()
        assert mode.ticks == []

    def test_elapsed_freezes_at_finish(self, ingestor, clock, bep):
        ingestor.feed_line(_line(bep.started()))
        clock.now += 4.0
        ingestor.feed_line(_line(bep.finished()))
        clock.now += 100.0
        assert ingestor.view().elapsed_seconds == 4.0

    def test_stop_from_waiting(self, ingestor, mode):
        ingestor.stop()
        assert ingestor.state is LiveState.FINISHED
        assert ingestor.cancelled is True
        assert mode.finished[0].cancelled is True

    def test_stop_from_running_freezes_state(self, ingestor, bep):
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(bep.action()))
        ingestor.stop()
        assert ingestor.feed_line(_line(bep.action("//later"))) is None
        snapshot = ingestor.snapshot()
        assert len(snapshot.actions) == 1
        assert snapshot.build_finished is None

    def test_stop_is_idempotent(self, ingestor, mode):
        ingestor.stop()
        ingestor.stop()
        assert len(mode.finished) == 1

    def test_stop_after_finish_is_not_a_cancellation(self, ingestor, bep):
        ingestor.feed_line(_line(bep.started()))
        ingestor.feed_line(_line(bep.finished()))
        ingestor.stop()
        assert ingestor.cancelled is False

    def test_timer_thread_ticks_until_stopped(self, mode, bep):
        ingestor = LiveIngestor(mode, refresh_hz=100.0)
        ticked = threading.Event()
        original = mode.on_tick

        def on_tick(view):
            original(view)
            ticked.set()

        mode.on_tick = on_tick
        ingestor.start()
        assert mode.started == 1
        assert ticked.wait(timeout=5.0)
        ingestor.stop()
        count = len(mode.ticks)
        # No further ticks once stopped
        assert ingestor._timer is None
        ingestor.tick()
        assert len(mode.ticks) == count

    def test_strict_snapshot_of_unfinished_session(self, ingestor, bep):
        from bep_analyzer.core.state import IncompleteStreamError

        ingestor.feed_line(_line(bep.started()))
        with pytest.raises(IncompleteStreamError):
            ingestor.snapshot(strict=True)
