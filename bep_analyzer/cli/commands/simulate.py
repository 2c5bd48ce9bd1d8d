"""``bep-analyzer simulate SOURCE TARGET`` — replay a completed stream.

Writes the records of SOURCE into TARGET as JSON lines, paced by their
reconstructed timestamps (or a fixed interval), so ``watch`` can be tried
against a build that already happened.
"""

from __future__ import annotations

import math
from pathlib import Path

import typer
from rich.console import Console

from bep_analyzer.config import settings
from bep_analyzer.core.decoder import DecoderConfigError, WireFormat
from bep_analyzer.simulator.simulator import StreamSimulator
from bep_analyzer.simulator.sinks import FileSink
from bep_analyzer.simulator.timeline import load_timeline

console = Console()


def simulate_cmd(
    source: Path = typer.Argument(
        ...,
        help="Completed build event file to replay.",
    ),
    target: Path = typer.Argument(
        ...,
        help="File to write the JSON stream to (truncated first).",
    ),
    source_format: WireFormat = typer.Option(
        WireFormat.JSON,
        "--source-format",
        help="Format of the source file: json or pb.",
    ),
    speed: float = typer.Option(
        None,
        "--speed",
        "-s",
        help="Playback speed factor; 2 means twice as fast.",
    ),
    max_delay: float = typer.Option(
        None,
        "--max-delay",
        help="Maximum delay in milliseconds between two records.",
    ),
    interval: float = typer.Option(
        None,
        "--interval",
        help="Fixed delay in milliseconds between records, ignoring timestamps.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Do not print a dot per replayed record.",
    ),
) -> None:
    """Replay a completed build event file into TARGET."""
    if not source.exists():
        console.print(f"[bold red]Source file not found:[/bold red] {source}")
        raise typer.Exit(code=1)

    try:
        timeline = load_timeline(
            source,
            source_format,
            proto_module=settings.proto_module,
            proto_message=settings.proto_message,
        )
    except DecoderConfigError as exc:
        console.print(f"[bold red]Cannot decode source:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not timeline:
        console.print("[yellow]No valid events could be read from the source file.[/yellow]")
        raise typer.Exit(code=1)

    speed_factor = speed if speed is not None else settings.speed_factor
    max_delay_ms = max_delay if max_delay is not None else settings.max_delay_ms
    interval_ms = interval if interval is not None else settings.interval_ms

    console.print(f"[blue]Replaying {len(timeline)} records from {source} into {target}[/blue]")
    if interval_ms > 0:
        console.print(f"[yellow]Fixed interval: {interval_ms}ms[/yellow]")
    else:
        console.print(f"[yellow]Speed factor: {speed_factor}x[/yellow]")
        if not math.isinf(max_delay_ms):
            console.print(f"[yellow]Max delay: {max_delay_ms}ms[/yellow]")

    def _dot(_record) -> None:
        console.print("[green].[/green]", end="")

    sink = FileSink(target)
    try:
        simulator = StreamSimulator(
            sink,
            speed_factor=speed_factor,
            max_delay_ms=max_delay_ms,
            interval_ms=interval_ms,
            on_record=None if quiet else _dot,
        )
    except ValueError as exc:
        sink.close()
        console.print(f"[bold red]Invalid pacing:[/bold red] {exc}")
        raise typer.Exit(code=1)

    try:
        written = simulator.replay(timeline)
    except KeyboardInterrupt:
        simulator.stop()
        written = simulator.records_written
        console.print("\n[yellow]Simulation interrupted.[/yellow]")
    finally:
        sink.close()

    console.print(f"\n[bold green]Simulation finished: {written} records written.[/bold green]")
