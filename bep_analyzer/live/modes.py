"""Render modes for the live ingestor.

All modes implement the ``RenderMode`` protocol.  The ingestor picks one
when it is constructed and calls it on every event, every tick, and once
at the end; the mode decides what (if anything) to emit.  The state
machine itself never branches on the mode.

- ``DashboardMode``: a redrawable multi-line Rich panel (``Rich.Live``).
- ``StatusLineMode``: one rewritten status line per tick, for a host
  status bar.
- ``LogLineMode``: one self-contained line per structurally significant
  event, tagged with a fixed prefix, for a host log panel.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bep_analyzer.core.fields import as_int
from bep_analyzer.models.events import BuildEvent, EventKind
from bep_analyzer.models.live import LiveState, LiveView

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


@runtime_checkable
class RenderMode(Protocol):
    """Protocol that every live render mode implements.

    Attributes
    ----------
    mode_name : str
        Identifier used on the command line (``"dashboard"``, ``"status"``,
        ``"log"``).
    """

    @property
    def mode_name(self) -> str:
        """Return the mode's identifier."""
        ...

    def on_start(self) -> None:
        """Called once before the first tick."""
        ...

    def on_event(self, event: BuildEvent, view: LiveView) -> None:
        """Called after *event* has been applied to the state."""
        ...

    def on_tick(self, view: LiveView) -> None:
        """Called by the render timer while the session is live."""
        ...

    def on_finish(self, view: LiveView) -> None:
        """Called once when the session reaches FINISHED."""
        ...


def _format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{seconds:.1f}s"


def _outcome(view: LiveView) -> str:
    if view.cancelled and view.overall_success is None:
        return "CANCELLED"
    if view.overall_success is None:
        return "INCOMPLETE"
    return "SUCCESS" if view.overall_success else "FAILED"


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


_OUTCOME_STYLES: dict[str, str] = {
    "SUCCESS": "bold green",
    "FAILED": "bold red",
    "CANCELLED": "yellow",
    "INCOMPLETE": "yellow",
}


class DashboardMode:
    """Multi-line human dashboard, redrawn in place with ``Rich.Live``.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._live: Live | None = None

    @property
    def mode_name(self) -> str:
        return "dashboard"

    def on_start(self) -> None:
        if self._live is not None:
            return
        self._live = Live(console=self.console, auto_refresh=False, transient=False)
        self._live.start()

    def on_event(self, event: BuildEvent, view: LiveView) -> None:
        """Events show up on the next tick."""

    def on_tick(self, view: LiveView) -> None:
        if self._live is not None:
            self._live.update(self.render(view), refresh=True)

    def on_finish(self, view: LiveView) -> None:
        if self._live is not None:
            self._live.update(self.render(view), refresh=True)
            self._live.stop()
            self._live = None
        else:
            self.console.print(self.render(view))

    def render(self, view: LiveView) -> Panel:
        """Render *view* as a Panel; usable directly or inside ``Rich.Live``."""
        progress = view.progress

        header = Text()
        if view.state is LiveState.FINISHED:
            outcome = _outcome(view)
            header.append(f"Build {outcome}", style=_OUTCOME_STYLES[outcome])
        elif view.state is LiveState.WAITING_FOR_SOURCE:
            header.append(f"{view.spinner} Waiting for build events...", style="dim")
        else:
            header.append(f"{view.spinner} ", style="cyan")
            if progress.total:
                header.append(
                    f"[{progress.completed:,} / {progress.total:,}] {progress.percent}%",
                    style="bold",
                )
            else:
                header.append("Building", style="bold")
        header.append(f"  {_format_elapsed(view.elapsed_seconds)}", style="dim")

        counts = Text.from_markup(
            f"[bold]Actions:[/bold] {view.actions_completed}"
            f"  |  [bold]Failed:[/bold] "
            + (f"[red]{view.actions_failed}[/red]" if view.actions_failed else "0")
            + f"  |  [bold]Problems:[/bold] {view.problem_count}"
        )

        parts: list = [header, counts]

        if progress.running_actions and view.state is LiveState.RUNNING:
            table = Table(show_header=True, header_style="bold cyan", expand=True)
            table.add_column("Running", ratio=1)
            table.add_column("Elapsed", justify="right", width=8)
            table.add_column("Strategy", width=14)
            for action in progress.running_actions:
                table.add_row(action.description, action.elapsed, action.strategy or "")
            parts.extend([Text(""), table])

        if view.recent_activity:
            parts.append(Text(""))
            parts.append(Text("Recent activity", style="bold"))
            for entry in view.recent_activity:
                style = "red" if entry.startswith(("FAILED", "Problem")) else ""
                parts.append(Text(entry, style=style))

        title = "[bold]Build Event Monitor[/bold]"
        if view.command:
            title += f" [dim]({escape(view.command)})[/dim]"
        return Panel(Group(*parts), title=title, border_style="blue", padding=(0, 1))


# ---------------------------------------------------------------------------
# Status line
# ---------------------------------------------------------------------------


class StatusLineMode:
    """One status line per tick, for embedding in a host status bar."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    @property
    def mode_name(self) -> str:
        return "status"

    def on_start(self) -> None:
        pass

    def on_event(self, event: BuildEvent, view: LiveView) -> None:
        pass

    def on_tick(self, view: LiveView) -> None:
        self.console.print(self.format(view), markup=False, highlight=False)

    def on_finish(self, view: LiveView) -> None:
        self.console.print(self.format(view), markup=False, highlight=False)

    @staticmethod
    def format(view: LiveView) -> str:
        elapsed = _format_elapsed(view.elapsed_seconds)
        if view.state is LiveState.FINISHED:
            return (
                f"Build {_outcome(view)} in {elapsed}: "
                f"{view.actions_completed} actions, {view.actions_failed} failed"
            )
        if view.state is LiveState.WAITING_FOR_SOURCE:
            return f"{view.spinner} Waiting for build events... {elapsed}"

        progress = view.progress
        line = f"{view.spinner} "
        if progress.total:
            line += f"[{progress.completed:,}/{progress.total:,}] {progress.percent}% "
        line += elapsed
        if progress.running_actions:
            line += f" | {progress.running_actions[0].description}"
        elif progress.current_action:
            line += f" | {progress.current_action}"
        return line


# ---------------------------------------------------------------------------
# Log lines
# ---------------------------------------------------------------------------


class LogLineMode:
    """One tagged line per build start, action, problem, and build finish."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    @property
    def mode_name(self) -> str:
        return "log"

    def on_start(self) -> None:
        pass

    def on_event(self, event: BuildEvent, view: LiveView) -> None:
        line = self.format_event(event)
        if line is not None:
            self.console.print(line, markup=False, highlight=False, soft_wrap=True)

    def on_tick(self, view: LiveView) -> None:
        pass

    def on_finish(self, view: LiveView) -> None:
        if view.cancelled and view.overall_success is None:
            self.console.print(
                "[BUILD_FINISH] CANCELLED", markup=False, highlight=False
            )

    @staticmethod
    def format_event(event: BuildEvent) -> str | None:
        """The log line for *event*, or None if it is not significant."""
        payload = event.payload or {}

        if event.kind is EventKind.BUILD_STARTED:
            command = payload.get("command", "")
            uuid = payload.get("uuid", "")
            return f"[BUILD_START] {command} {uuid}".rstrip()

        if event.kind is EventKind.ACTION_COMPLETED:
            mnemonic = payload.get("mnemonic") or payload.get("type") or ""
            label = event.event_id.get("label") or event.event_id.get("primaryOutput", "")
            if payload.get("success"):
                return f"[ACTION_OK] {mnemonic} {label}"
            exit_code = as_int(payload.get("exitCode"))
            return f"[ACTION_FAIL] {mnemonic} {label} (exit {exit_code})"

        if event.kind in (EventKind.PROBLEM, EventKind.ABORTED):
            text = payload.get("message") or payload.get("description") or ""
            reason = payload.get("reason")
            first = str(text).strip().split("\n", 1)[0]
            if reason:
                first = f"{reason}: {first}" if first else str(reason)
            return f"[PROBLEM] {first}"

        if event.kind is EventKind.BUILD_FINISHED:
            exit_code = payload.get("exitCode") or {}
            name = exit_code.get("name", "") if isinstance(exit_code, dict) else ""
            if "overallSuccess" in payload:
                success = bool(payload["overallSuccess"])
            else:
                success = name == "SUCCESS"
            outcome = "SUCCESS" if success else "FAILED"
            return f"[BUILD_FINISH] {outcome} {name}".rstrip()

        return None


RENDER_MODES: dict[str, type] = {
    "dashboard": DashboardMode,
    "status": StatusLineMode,
    "log": LogLineMode,
}


def create_mode(name: str, console: Console | None = None) -> RenderMode:
    """Instantiate a render mode by name."""
    try:
        mode_class = RENDER_MODES[name]
    except KeyError:
        raise ValueError(
            f"Unknown render mode {name!r}; expected one of {sorted(RENDER_MODES)}"
        ) from None
    return mode_class(console=console)
