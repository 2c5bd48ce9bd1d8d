"""ReportSnapshot — the frozen handoff surface for report renderers.

Renderers receive this model and nothing else.  It is built from a deep
copy of the accumulator's state, so further ingestion (live mode) can
never tear a report that is being generated.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from bep_analyzer.models.build import (
    Action,
    ActionDetailPolicy,
    BuildFinished,
    BuildMetrics,
    BuildStarted,
    BuildToolLogs,
    CommandLine,
    Configuration,
    ConvenienceSymlink,
    FailedTarget,
    OptionsParsed,
    Problem,
    TestSummary,
)


class ReportSnapshot(BaseModel):
    """A frozen, point-in-time projection of the accumulated build state."""

    model_config = ConfigDict(frozen=True)

    build_started: BuildStarted | None = None
    build_finished: BuildFinished | None = None
    build_metrics: BuildMetrics | None = None
    build_tool_logs: BuildToolLogs | None = None
    actions: tuple[Action, ...] = ()
    test_summaries: tuple[TestSummary, ...] = ()
    problems: tuple[Problem, ...] = ()
    failed_targets: tuple[FailedTarget, ...] = ()
    workspace_status: dict[str, str] | None = None
    configurations: dict[str, Configuration] = {}
    options_parsed: OptionsParsed | None = None
    structured_command_line: CommandLine | None = None
    build_patterns: tuple[str, ...] = ()
    resolved_outputs: dict[str, list[str]] = {}
    convenience_symlinks: tuple[ConvenienceSymlink, ...] = ()
    action_details: ActionDetailPolicy = ActionDetailPolicy.FAILED

    @property
    def is_complete(self) -> bool:
        """Both lifecycle records were observed."""
        return self.build_started is not None and self.build_finished is not None

    @property
    def total_duration_ms(self) -> int | None:
        """Finished minus started, or None for an incomplete stream."""
        if not self.is_complete:
            return None
        return self.build_finished.finish_time_ms - self.build_started.start_time_ms

    @property
    def overall_success(self) -> bool:
        return bool(self.build_finished and self.build_finished.overall_success)

    @property
    def failed_actions(self) -> list[Action]:
        return [a for a in self.actions if not a.success]
