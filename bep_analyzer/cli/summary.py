"""Rich terminal summary of a ``ReportSnapshot`` for the CLI.

Deliberately brief: the build outcome, failed actions, test results,
problems, and requested outputs.  Full reports are produced by separate
renderers from the same snapshot.
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bep_analyzer.models.build import TestStatus
from bep_analyzer.models.snapshot import ReportSnapshot

_TEST_STYLES: dict[TestStatus, str] = {
    TestStatus.PASSED: "green",
    TestStatus.FLAKY: "yellow",
    TestStatus.TIMEOUT: "bold red",
    TestStatus.FAILED: "bold red",
    TestStatus.INCOMPLETE: "yellow",
    TestStatus.REMOTE_FAILURE: "bold red",
    TestStatus.FAILED_TO_BUILD: "bold red",
    TestStatus.TOOL_HALTED_BEFORE_TESTING: "yellow",
    TestStatus.NO_STATUS: "dim",
}

_MAX_OUTPUTS_PER_TARGET = 10


def _format_ms(value: int | None) -> str:
    if value is None:
        return "-"
    if value < 1000:
        return f"{value}ms"
    return f"{value / 1000:.2f}s"


class SummaryRenderer:
    """Renders a ``ReportSnapshot`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render(self, snapshot: ReportSnapshot) -> Panel:
        parts: list = [self._header(snapshot)]

        failed = snapshot.failed_actions
        if failed:
            parts.extend([Text(""), self._failed_actions_table(snapshot)])
        if snapshot.test_summaries:
            parts.extend([Text(""), self._tests_table(snapshot)])
        if snapshot.problems:
            parts.append(Text(""))
            parts.append(Text("Problems", style="bold red"))
            for problem in snapshot.problems:
                prefix = f"[{problem.reason}] " if problem.reason else ""
                first = problem.message.strip().split("\n", 1)[0]
                parts.append(Text(f"  {prefix}{first}", style="red"))
        if snapshot.resolved_outputs:
            parts.append(Text(""))
            parts.append(Text("Build outputs", style="bold"))
            for label, names in snapshot.resolved_outputs.items():
                parts.append(Text(f"  {label}", style="cyan"))
                for name in names[:_MAX_OUTPUTS_PER_TARGET]:
                    parts.append(Text(f"    {name}"))
                if len(names) > _MAX_OUTPUTS_PER_TARGET:
                    parts.append(
                        Text(f"    ... and {len(names) - _MAX_OUTPUTS_PER_TARGET} more", style="dim")
                    )

        border = "green" if snapshot.overall_success else "red"
        return Panel(
            Group(*parts),
            title="[bold]Build Summary[/bold]",
            border_style=border,
            padding=(1, 2),
        )

    def _header(self, snapshot: ReportSnapshot) -> Text:
        started = snapshot.build_started
        finished = snapshot.build_finished
        summary_parts: list[str] = []
        if started is not None:
            summary_parts.append(f"[bold]Command:[/bold] {escape(started.command or '-')}")
            if started.build_tool_version:
                summary_parts.append(f"[bold]Version:[/bold] {escape(started.build_tool_version)}")
        if finished is not None:
            status = (
                "[green]SUCCESS[/green]"
                if finished.overall_success
                else f"[bold red]FAILED[/bold red] ({finished.exit_code_name or finished.exit_code})"
            )
            summary_parts.append(f"[bold]Result:[/bold] {status}")
        summary_parts.append(f"[bold]Duration:[/bold] {_format_ms(snapshot.total_duration_ms)}")
        summary_parts.append(
            f"[bold]Actions:[/bold] {len(snapshot.actions)} "
            f"([red]{len(snapshot.failed_actions)} failed[/red])"
            if snapshot.failed_actions
            else f"[bold]Actions:[/bold] {len(snapshot.actions)}"
        )
        if snapshot.build_metrics is not None:
            summary_parts.append(
                f"[bold]Executed:[/bold] {snapshot.build_metrics.actions_executed}"
                f"/{snapshot.build_metrics.actions_created}"
            )
        return Text.from_markup("  |  ".join(summary_parts))

    def _failed_actions_table(self, snapshot: ReportSnapshot) -> Table:
        table = Table(title="Failed actions", header_style="bold red", expand=True)
        table.add_column("Mnemonic", style="bold")
        table.add_column("Label", min_width=20)
        table.add_column("Strategy", width=12)
        table.add_column("Duration", justify="right", width=10)
        table.add_column("Error", ratio=1)
        for action in snapshot.failed_actions:
            stderr = (action.stderr_content or "").strip().split("\n", 1)[0]
            table.add_row(
                Text(action.mnemonic),
                Text(action.label),
                Text(action.strategy or "-"),
                _format_ms(action.duration_ms),
                Text(stderr or "-"),
            )
        return table

    def _tests_table(self, snapshot: ReportSnapshot) -> Table:
        table = Table(title="Tests", header_style="bold cyan", expand=True)
        table.add_column("Target", min_width=20)
        table.add_column("Status", justify="center")
        table.add_column("Runs", justify="right")
        table.add_column("Cached", justify="right")
        table.add_column("Duration", justify="right")
        for summary in snapshot.test_summaries:
            style = _TEST_STYLES.get(summary.status, "")
            table.add_row(
                Text(summary.label),
                f"[{style}]{summary.status.value}[/{style}]",
                str(summary.total_run_count),
                str(summary.total_num_cached),
                _format_ms(summary.total_run_duration_ms),
            )
        return table

    def print_snapshot(self, snapshot: ReportSnapshot) -> None:
        self.console.print(self.render(snapshot))
