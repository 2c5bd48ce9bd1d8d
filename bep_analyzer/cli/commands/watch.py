"""``bep-analyzer watch FILE`` — follow a build event file while it grows.

The file may not exist yet (the build has not started); its directory
must.  Ctrl+C stops the session and summarizes whatever was received.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from bep_analyzer.cli.summary import SummaryRenderer
from bep_analyzer.config import settings
from bep_analyzer.live.ingestor import LiveIngestor
from bep_analyzer.live.modes import RENDER_MODES, create_mode
from bep_analyzer.live.tailer import SourceUnavailableError
from bep_analyzer.models.build import ActionDetailPolicy

console = Console()


def watch_cmd(
    file: Path = typer.Argument(
        ...,
        help="Path to the build event JSON file being written.",
    ),
    mode: str = typer.Option(
        "dashboard",
        "--mode",
        "-m",
        help=f"Render mode: {', '.join(RENDER_MODES)}.",
    ),
    action_details: ActionDetailPolicy = typer.Option(
        None,
        "--action-details",
        "-a",
        help="Capture argv and stderr for none, failed, or all actions.",
    ),
    refresh_hz: float = typer.Option(
        None,
        "--refresh",
        "-r",
        help="Render tick rate in Hz.",
    ),
    summary: bool = typer.Option(
        True,
        "--summary/--no-summary",
        help="Print a build summary when the session ends.",
    ),
) -> None:
    """Follow a growing build event file and render it live."""
    if mode not in RENDER_MODES:
        console.print(
            f"[bold red]Unknown mode:[/bold red] {mode} "
            f"[dim](choose from {', '.join(RENDER_MODES)})[/dim]"
        )
        raise typer.Exit(code=1)

    ingestor = LiveIngestor(
        create_mode(mode, console=console),
        action_details=action_details or settings.action_details,
        recent_activity_limit=settings.recent_activity_limit,
        running_actions_limit=settings.running_actions_limit,
        refresh_hz=refresh_hz or settings.refresh_hz,
        poll_interval=settings.poll_interval_seconds,
    )

    if mode != "log":
        console.print(f"[dim]Watching {file}. Press Ctrl+C to stop.[/dim]")

    try:
        snapshot = ingestor.follow(file)
    except SourceUnavailableError as exc:
        console.print(f"[bold red]Cannot watch:[/bold red] {exc}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        ingestor.stop()
        snapshot = ingestor.snapshot()

    if summary and mode != "log":
        SummaryRenderer(console=console).print_snapshot(snapshot)
    if not snapshot.is_complete:
        console.print("[yellow]The stream ended before the build finished.[/yellow]")
        raise typer.Exit(code=1)
