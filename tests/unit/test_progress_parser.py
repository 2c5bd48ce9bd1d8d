"""Tests for the progress-text heuristics."""

from __future__ import annotations

from bep_analyzer.core.progress_parser import (
    action_subject,
    extract_log_lines,
    match_action,
    parse_progress_text,
    split_frames,
    strip_ansi,
)

REDRAW = "\r\x1b[1A\x1b[K"


class TestParseProgressText:
    def test_counter_and_running_actions(self):
        text = (
            "[12 / 340] Compiling app/main.cc; 3s linux-sandbox\n"
            "    Compiling app/lib.cc; 7s remote\n"
            "    Linking app/main; 1s local\n"
        )
        info = parse_progress_text(text)
        assert info.completed == 12
        assert info.total == 340
        assert info.current_action == "Compiling app/main.cc; 3s linux-sandbox"
        assert [a.elapsed_seconds for a in info.running_actions] == [7, 3, 1]
        assert info.running_actions[0].description == "Compiling app/lib.cc"
        assert info.running_actions[0].strategy == "remote"
        assert info.percent == 3

    def test_counter_with_thousands_separator(self):
        info = parse_progress_text("[1,024 / 2,048] Linking app/main; 0s local")
        assert (info.completed, info.total) == (1024, 2048)
        assert info.percent == 50

    def test_only_last_frame_is_used_for_running_actions(self):
        first = "[1 / 10] Compiling a.cc; 9s local\n    Compiling old.cc; 8s local\n"
        second = "[2 / 10] Compiling b.cc; 1s remote\n"
        info = parse_progress_text(first + REDRAW * 2 + second)
        assert (info.completed, info.total) == (2, 10)
        assert [a.description for a in info.running_actions] == ["Compiling b.cc"]

    def test_strategy_stem_ignores_the_verb(self):
        info = parse_progress_text("[1 / 2] Compiling main.cc; 1s remote\nLinking app; 0s local")
        assert info.strategies == {"main": "remote", "app": "local"}

    def test_strategies_come_from_every_frame(self):
        first = "Compiling a.cc; 9s local\n"
        second = "Compiling b.cc; 1s remote\n"
        info = parse_progress_text(first + REDRAW + second)
        assert info.strategies == {"a": "local", "b": "remote"}

    def test_running_actions_are_bounded(self):
        text = "\n".join(f"Compiling f{i}.cc; {i}s local" for i in range(10))
        info = parse_progress_text(text, max_running=3)
        assert [a.elapsed_seconds for a in info.running_actions] == [9, 8, 7]

    def test_ansi_is_stripped(self):
        text = "\x1b[32m[5 / 6]\x1b[0m Compiling x.cc; 2s local"
        info = parse_progress_text(text)
        assert (info.completed, info.total) == (5, 6)
        assert info.running_actions[0].strategy == "local"

    def test_unmatched_text_yields_empty_info(self):
        info = parse_progress_text("INFO: Analyzed 3 targets (0 packages loaded).")
        assert info.total == 0
        assert info.running_actions == []
        assert info.strategies == {}
        assert info.percent == 0

    def test_log_lines_in_last_frame(self):
        info = parse_progress_text("WARNING: deprecated flag\nINFO: fine\nERROR: broken")
        assert info.log_lines == ["WARNING: deprecated flag", "ERROR: broken"]

    def test_empty_input(self):
        info = parse_progress_text("")
        assert info.completed == 0 and info.running_actions == []


class TestHelpers:
    def test_strip_ansi(self):
        assert strip_ansi("\x1b[31mred\x1b[0m") == "red"

    def test_split_frames(self):
        assert split_frames("a" + REDRAW + "b") == ["a", "b"]

    def test_extract_log_lines_is_case_insensitive(self):
        assert extract_log_lines("x\nError: y\nwarning: z\n") == ["Error: y", "warning: z"]

    def test_match_action_with_ellipsis(self):
        action = match_action("Testing //app:test; 12s remote-cache ...")
        assert action is not None
        assert action.strategy == "remote-cache"
        assert action.elapsed == "12s"

    def test_match_action_without_strategy(self):
        action = match_action("Compiling a.cc; 4s")
        assert action is not None
        assert action.strategy is None

    def test_action_subject_drops_the_verb(self):
        assert action_subject("Compiling app/main.cc") == "app/main.cc"
        assert action_subject("Testing //app:test") == "//app:test"

    def test_non_action_line(self):
        assert match_action("Loading: 0 packages loaded") is None
