"""Main Typer application — imports and registers all CLI commands.

Entry point: ``bep-analyzer`` (configured via pyproject.toml scripts).

Commands: analyze, watch, simulate.
"""

from __future__ import annotations

import typer

from bep_analyzer.cli.commands.analyze import analyze_cmd
from bep_analyzer.cli.commands.simulate import simulate_cmd
from bep_analyzer.cli.commands.watch import watch_cmd
from bep_analyzer.config import configure_logging, settings

app = typer.Typer(
    name="bep-analyzer",
    help="Analyze Build Event Protocol streams, after the fact or live.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to BEP_ANALYZER_LOG_LEVEL or WARNING).",
    ),
) -> None:
    """Analyze Build Event Protocol streams, after the fact or live."""
    configure_logging((log_level or settings.log_level).upper())


# Register subcommands
app.command(name="analyze", help="Analyze a completed event file.")(analyze_cmd)
app.command(name="watch", help="Follow a growing event file in real time.")(watch_cmd)
app.command(name="simulate", help="Replay a completed event file into a target file.")(
    simulate_cmd
)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
