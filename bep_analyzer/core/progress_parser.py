"""Heuristic parsing of the build tool's console progress text.

The progress event carries raw stdout/stderr, including ANSI colors and
cursor movement.  Two facts that no structured event carries live only
here: the execution strategy of each action (``Compiling a.cc; 3s local``)
and the progress bar state (``[12 / 340] ...``).  Everything in this
module is best-effort: text that does not match is simply not extracted.

``parse_progress_text`` and ``iter_strategies`` are the only entry points
the rest of the package uses, so the regexes can change without touching
the state machines.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from bep_analyzer.core.fields import file_stem
from bep_analyzer.models.progress import ProgressInfo, RunningAction

_ANSI_RE = re.compile(
    r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]|\r"
)

# Cursor up + erase line: the tool redraws its progress block in place.
_FRAME_SEPARATOR_RE = re.compile(r"(?:\r?\u001b\[1A\u001b\[K)+")

_COUNTER_RE = re.compile(r"^\[(\d[\d,]*)\s*/\s*(\d[\d,]*)\]\s*(.*)$")

_ACTION_RE = re.compile(
    r"^(?P<description>\w+\s+.+?);\s+(?P<elapsed>\d+)s"
    r"(?:\s+(?P<strategy>[A-Za-z][\w\s,-]*?\w))?\s*(?:\.\.\.)?$"
)

_LOG_MARKERS = ("warning:", "error:")


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def split_frames(text: str) -> list[str]:
    """Split a payload into redraw frames; the last one is current."""
    return _FRAME_SEPARATOR_RE.split(text)


def is_log_line(line: str) -> bool:
    lowered = strip_ansi(line).lower()
    return any(marker in lowered for marker in _LOG_MARKERS)


def extract_log_lines(text: str) -> list[str]:
    """Lines that explicitly say ``warning:`` or ``error:``."""
    return [line for line in text.split("\n") if is_log_line(line)]


def match_action(line: str) -> RunningAction | None:
    match = _ACTION_RE.match(strip_ansi(line).strip())
    if not match:
        return None
    strategy = match.group("strategy")
    return RunningAction(
        description=match.group("description").strip(),
        elapsed_seconds=int(match.group("elapsed")),
        strategy=strategy.strip() if strategy else None,
    )


def action_subject(description: str) -> str:
    """``Compiling app/main.cc`` -> ``app/main.cc``: the description minus its verb."""
    return description.split(None, 1)[-1]


def iter_strategies(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(subject, strategy)`` for every action line with a strategy."""
    for line in text.split("\n"):
        clean = strip_ansi(line).strip()
        counter = _COUNTER_RE.match(clean)
        if counter:
            clean = counter.group(3)
        action = match_action(clean)
        if action is not None and action.strategy:
            yield action_subject(action.description), action.strategy


def infer_strategies(text: str) -> dict[str, str]:
    """Map file stem -> strategy for every action line with a strategy."""
    strategies: dict[str, str] = {}
    for subject, strategy in iter_strategies(text):
        stem = file_stem(subject)
        if stem:
            strategies[stem] = strategy
    return strategies


def parse_progress_text(raw: str, *, max_running: int | None = None) -> ProgressInfo:
    """Parse a progress payload, reading running actions from the last frame only."""
    frames = split_frames(raw or "")
    current = frames[-1] if frames else ""

    completed = 0
    total = 0
    current_action = ""
    running: list[RunningAction] = []
    log_lines: list[str] = []

    for line in current.split("\n"):
        clean = strip_ansi(line).strip()
        if not clean:
            continue

        counter = _COUNTER_RE.match(clean)
        if counter:
            completed = int(counter.group(1).replace(",", ""))
            total = int(counter.group(2).replace(",", ""))
            current_action = counter.group(3).strip()
            top = match_action(current_action)
            if top is not None:
                running.append(top)
            continue

        action = match_action(clean)
        if action is not None:
            running.append(action)
            continue

        if is_log_line(line):
            log_lines.append(line)

    running.sort(key=lambda a: a.elapsed_seconds, reverse=True)
    if max_running is not None:
        running = running[:max_running]

    return ProgressInfo(
        completed=completed,
        total=total,
        current_action=current_action,
        running_actions=running,
        log_lines=log_lines,
        strategies=infer_strategies(raw or ""),
    )
