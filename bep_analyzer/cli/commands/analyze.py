"""``bep-analyzer analyze FILE`` — post-mortem analysis of a completed stream.

Decodes the whole file, accumulates it, and prints a summary (or the full
snapshot as JSON).  A stream without build-started / build-finished events
is refused rather than summarized.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from bep_analyzer.cli.summary import SummaryRenderer
from bep_analyzer.config import settings
from bep_analyzer.core.accumulator import StateAccumulator
from bep_analyzer.core.decoder import (
    DecoderConfigError,
    EventDecoder,
    StreamDecodeError,
    WireFormat,
)
from bep_analyzer.core.state import IncompleteStreamError
from bep_analyzer.models.build import ActionDetailPolicy

console = Console()


def analyze_cmd(
    file: Path = typer.Argument(
        ...,
        help="Path to the build event file.",
    ),
    wire_format: WireFormat = typer.Option(
        None,
        "--format",
        "-f",
        help="Wire format: json (newline-delimited) or pb (length-prefixed binary).",
    ),
    action_details: ActionDetailPolicy = typer.Option(
        None,
        "--action-details",
        "-a",
        help="Capture argv and stderr for none, failed, or all actions.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the full snapshot as JSON instead of a summary.",
    ),
    strict: bool = typer.Option(
        True,
        "--strict/--no-strict",
        help="Refuse to report on a stream missing its start or finish event.",
    ),
) -> None:
    """Analyze a completed build event file."""
    if not file.exists():
        console.print(f"[bold red]File not found:[/bold red] {file}")
        raise typer.Exit(code=1)

    decoder = EventDecoder(
        wire_format or WireFormat(settings.wire_format),
        proto_module=settings.proto_module,
        proto_message=settings.proto_message,
    )
    accumulator = StateAccumulator(action_details=action_details or settings.action_details)

    try:
        accumulator.apply_all(decoder.decode_path(file))
    except (StreamDecodeError, DecoderConfigError) as exc:
        console.print(f"[bold red]Decoding failed:[/bold red] {exc}")
        console.print(
            f"[dim]{accumulator.state.events_applied} events were applied before the error.[/dim]"
        )
        raise typer.Exit(code=1)

    try:
        snapshot = accumulator.snapshot(strict=strict)
    except IncompleteStreamError as exc:
        console.print(f"[bold red]Incomplete stream:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(snapshot.model_dump_json(indent=2))
    else:
        SummaryRenderer(console=console).print_snapshot(snapshot)
