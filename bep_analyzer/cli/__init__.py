"""bep-analyzer CLI — Typer-based command-line interface.

Provides the ``bep-analyzer`` command with subcommands for analyzing a
completed event file, watching a growing one, and replaying a completed
one into a target file.

All output uses Rich for formatted terminal display.
"""
