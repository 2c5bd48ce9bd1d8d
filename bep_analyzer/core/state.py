"""BuildState — the explicit, per-analysis accumulation context.

There is no module-level state: each analysis owns one ``BuildState`` and
passes it to the accumulator.  Only the accumulator mutates it; everyone
else reads a ``ReportSnapshot`` taken with ``to_snapshot()``.
"""

from __future__ import annotations

from pydantic import BaseModel

from bep_analyzer.core.file_sets import FileSetResolver
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
    NamedSetOfFiles,
    OptionsParsed,
    Problem,
    TestSummary,
)
from bep_analyzer.models.snapshot import ReportSnapshot


class IncompleteStreamError(RuntimeError):
    """Raised when a report is requested for a stream missing its lifecycle events."""


class BuildState(BaseModel):
    """Mutable accumulation slots (see the accumulator for update rules)."""

    build_started: BuildStarted | None = None
    build_finished: BuildFinished | None = None
    build_metrics: BuildMetrics | None = None
    build_tool_logs: BuildToolLogs | None = None
    actions: list[Action] = []
    test_summaries: dict[str, TestSummary] = {}
    problems: list[Problem] = []
    failed_targets: list[FailedTarget] = []
    workspace_status: dict[str, str] | None = None
    configurations: dict[str, Configuration] = {}
    options_parsed: OptionsParsed | None = None
    structured_command_line: CommandLine | None = None
    build_patterns: list[str] = []
    named_sets: dict[str, NamedSetOfFiles] = {}
    convenience_symlinks: list[ConvenienceSymlink] = []
    top_level_output_sets: dict[str, list[str]] = {}
    events_applied: int = 0

    # Correlation caches filled from progress text
    progress_stderr: dict[str, str] = {}
    strategy_by_stem: dict[str, str] = {}

    def resolve_outputs(self) -> dict[str, list[str]]:
        """Target label -> de-duplicated output file names."""
        resolver = FileSetResolver(self.named_sets)
        return {
            label: resolver.resolve_names(set_ids)
            for label, set_ids in self.top_level_output_sets.items()
        }

    def to_snapshot(
        self,
        action_details: ActionDetailPolicy = ActionDetailPolicy.FAILED,
        *,
        strict: bool = False,
    ) -> ReportSnapshot:
        """Freeze the current state into a ``ReportSnapshot``.

        Parameters
        ----------
        strict:
            Refuse to snapshot a stream that never produced a build-started
            or build-finished event (including an empty stream).

        Raises
        ------
        IncompleteStreamError
            In strict mode, when either lifecycle event is missing.
        """
        if strict:
            missing = [
                name
                for name, value in (
                    ("build-started", self.build_started),
                    ("build-finished", self.build_finished),
                )
                if value is None
            ]
            if missing:
                raise IncompleteStreamError(
                    f"Incomplete event stream ({self.events_applied} events): "
                    f"no {' or '.join(missing)} event observed"
                )

        return ReportSnapshot(
            build_started=self.build_started,
            build_finished=self.build_finished,
            build_metrics=self.build_metrics,
            build_tool_logs=self.build_tool_logs,
            actions=tuple(a.model_copy(deep=True) for a in self.actions),
            test_summaries=tuple(self.test_summaries.values()),
            problems=tuple(self.problems),
            failed_targets=tuple(self.failed_targets),
            workspace_status=dict(self.workspace_status)
            if self.workspace_status is not None
            else None,
            configurations=dict(self.configurations),
            options_parsed=self.options_parsed,
            structured_command_line=self.structured_command_line,
            build_patterns=tuple(self.build_patterns),
            resolved_outputs=self.resolve_outputs(),
            convenience_symlinks=tuple(self.convenience_symlinks),
            action_details=action_details,
        )
