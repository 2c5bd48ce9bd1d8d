"""StateAccumulator — applies one event at a time to a ``BuildState``.

Update rules per slot:

- build started / finished, metrics, tool logs, workspace status, options,
  canonical command line: overwrite on arrival.
- actions, problems, failed targets, patterns, convenience symlinks: append.
- test summaries: upsert by label (last write wins).
- configurations, named sets, top-level output sets: insert-only.

``apply`` does no I/O except reading an action's stderr side file when the
detail policy asks for it, and never raises for field-level anomalies:
malformed numbers become zero, a missing payload is skipped, unknown
event kinds are ignored, and an event whose nested fields have the wrong
shape is logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from bep_analyzer.core.fields import (
    as_int,
    as_str_list,
    duration_ms,
    file_stem,
    millis_field,
    path_ends_with,
    timestamp_ms,
    uri_to_path,
)
from bep_analyzer.core.labels import is_requested
from bep_analyzer.core.progress_parser import extract_log_lines, iter_strategies
from bep_analyzer.core.state import BuildState
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
    FileRef,
    LogFile,
    NamedSetOfFiles,
    OptionsParsed,
    Problem,
    ProblemKind,
    TestStatus,
    TestSummary,
)
from bep_analyzer.models.events import BuildEvent, EventKind
from bep_analyzer.models.snapshot import ReportSnapshot

logger = logging.getLogger(__name__)

CANONICAL_COMMAND_LINE = "canonical"


def _file_refs(entries: Any) -> list[str]:
    refs: list[str] = []
    for entry in entries or []:
        if isinstance(entry, dict):
            ref = entry.get("uri") or entry.get("name")
            if ref:
                refs.append(str(ref))
    return refs


class StateAccumulator:
    """Mutates a ``BuildState`` from a stream of ``BuildEvent``s.

    Parameters
    ----------
    state:
        The context to accumulate into.  A fresh one is created if omitted.
    action_details:
        Which actions get argv and stderr captured.
    """

    def __init__(
        self,
        state: BuildState | None = None,
        *,
        action_details: ActionDetailPolicy | str = ActionDetailPolicy.FAILED,
    ) -> None:
        self.state = state if state is not None else BuildState()
        self.action_details = ActionDetailPolicy(action_details)
        # Actions still waiting for a correlated progress fact
        self._awaiting_strategy: dict[str, list[Action]] = {}
        self._awaiting_stderr: dict[str, Action] = {}
        self._handlers: dict[EventKind, Callable[[BuildEvent], None]] = {
            EventKind.BUILD_STARTED: self._on_build_started,
            EventKind.BUILD_FINISHED: self._on_build_finished,
            EventKind.ACTION_COMPLETED: self._on_action_completed,
            EventKind.TARGET_COMPLETED: self._on_target_completed,
            EventKind.TEST_SUMMARY: self._on_test_summary,
            EventKind.PROBLEM: self._on_problem,
            EventKind.ABORTED: self._on_aborted,
            EventKind.WORKSPACE_STATUS: self._on_workspace_status,
            EventKind.CONFIGURATION: self._on_configuration,
            EventKind.BUILD_METRICS: self._on_build_metrics,
            EventKind.BUILD_TOOL_LOGS: self._on_build_tool_logs,
            EventKind.OPTIONS_PARSED: self._on_options_parsed,
            EventKind.STRUCTURED_COMMAND_LINE: self._on_structured_command_line,
            EventKind.PATTERN: self._on_pattern,
            EventKind.NAMED_SET: self._on_named_set,
            EventKind.CONVENIENCE_SYMLINKS: self._on_convenience_symlinks,
            EventKind.PROGRESS: self._on_progress,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply(self, event: BuildEvent) -> None:
        """Apply a single event to the state."""
        self.state.events_applied += 1
        handler = self._handlers.get(event.kind)
        if handler is None:
            return
        if event.payload is None and event.kind not in (
            EventKind.PATTERN,
            EventKind.PROGRESS,
        ):
            logger.debug("Skipping %s event without payload", event.kind.value)
            return
        try:
            handler(event)
        except (AttributeError, TypeError, ValueError) as exc:
            # A nested field of the wrong shape; the event is dropped
            logger.warning("Skipping malformed %s event: %s", event.kind.value, exc)

    def apply_all(self, events: Iterable[BuildEvent]) -> int:
        """Apply events in order; returns how many were applied.

        Errors raised by *events* itself (a corrupt binary stream) propagate
        after every event before them has been applied.
        """
        count = 0
        for event in events:
            self.apply(event)
            count += 1
        return count

    def snapshot(self, *, strict: bool = False) -> ReportSnapshot:
        return self.state.to_snapshot(self.action_details, strict=strict)

    @property
    def last_action(self) -> Action | None:
        return self.state.actions[-1] if self.state.actions else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_build_started(self, event: BuildEvent) -> None:
        p = event.payload
        if self.state.build_started is not None:
            logger.debug("Second build-started event overwrites the first")
        self.state.build_started = BuildStarted(
            uuid=str(p.get("uuid", "")),
            start_time_ms=millis_field(p, "startTimeMillis", "startTime"),
            build_tool_version=str(p.get("buildToolVersion", "")),
            command=str(p.get("command", "")),
            working_directory=str(p.get("workingDirectory", "")),
            workspace_directory=str(p.get("workspaceDirectory", "")),
            options_description=str(p.get("optionsDescription", "")),
            server_pid=as_int(p.get("serverPid")),
        )

    def _on_build_finished(self, event: BuildEvent) -> None:
        p = event.payload
        exit_code = p.get("exitCode") or {}
        exit_name = str(exit_code.get("name", "")) if isinstance(exit_code, dict) else ""
        if "overallSuccess" in p:
            success = bool(p.get("overallSuccess"))
        else:
            success = exit_name == "SUCCESS"
        if self.state.build_finished is not None:
            logger.debug("Second build-finished event overwrites the first")
        self.state.build_finished = BuildFinished(
            overall_success=success,
            exit_code_name=exit_name,
            exit_code=as_int(exit_code.get("code")) if isinstance(exit_code, dict) else 0,
            finish_time_ms=millis_field(p, "finishTimeMillis", "finishTime"),
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _on_action_completed(self, event: BuildEvent) -> None:
        p = event.payload
        eid = event.event_id
        primary_path = str(eid.get("primaryOutput", ""))
        primary_uri = f"file://{primary_path}" if primary_path else ""
        if not primary_uri:
            primary_uri = str((p.get("primaryOutput") or {}).get("uri", ""))
        start_ms, wall_ms = self._action_timing(p)

        action = Action(
            success=bool(p.get("success")),
            mnemonic=str(p.get("mnemonic") or p.get("type") or ""),
            label=str(eid.get("label") or p.get("label") or primary_path),
            primary_output=primary_uri,
            start_time_ms=start_ms,
            duration_ms=wall_ms,
            exit_code=as_int(p.get("exitCode")),
        )

        stem = file_stem(primary_uri)
        if stem:
            strategy = self.state.strategy_by_stem.pop(stem, None)
            if strategy:
                action.strategy = strategy
            else:
                self._awaiting_strategy.setdefault(stem, []).append(action)

        if self.action_details.wants_details(action.success):
            action.argv = as_str_list(p.get("commandLine") or p.get("argv"))
            self._capture_stderr(action, p)

        self.state.actions.append(action)

    @staticmethod
    def _action_timing(p: dict[str, Any]) -> tuple[int, int]:
        info = (p.get("actionResult") or {}).get("executionInfo")
        if isinstance(info, dict):
            return as_int(info.get("startTimeMillis")), as_int(info.get("wallTimeMillis"))
        start = timestamp_ms(p.get("startTime"))
        end = timestamp_ms(p.get("endTime"))
        if start is not None and end is not None:
            return start, max(end - start, 0)
        return start or 0, 0

    def _capture_stderr(self, action: Action, p: dict[str, Any]) -> None:
        cached = self.state.progress_stderr.pop(action.label, None) if action.label else None
        if cached:
            action.stderr_content = cached
            return

        stderr_uri = (p.get("stderr") or {}).get("uri")
        if stderr_uri:
            action.stderr_content = self._read_stderr(str(stderr_uri), action)
        elif action.label:
            self._awaiting_stderr[action.label] = action

    @staticmethod
    def _read_stderr(uri: str, action: Action) -> str:
        try:
            path = Path(uri_to_path(uri))
            if path.exists():
                return path.read_text(encoding="utf-8", errors="replace")
        except (OSError, ValueError) as exc:
            return f"[Error] Failed to process stderr URI: {uri}. Reason: {exc}"

        if action.success:
            return "[Info] Stderr file not found (likely cleaned up by Bazel)."
        logger.warning(
            "Stderr file for failed action %s not found: %s", action.label, uri
        )
        return f"[Error] Stderr file for FAILED action not found. URI: {uri}"

    # ------------------------------------------------------------------
    # Targets and tests
    # ------------------------------------------------------------------

    def _on_target_completed(self, event: BuildEvent) -> None:
        p = event.payload
        label = str(event.event_id.get("label", ""))
        if not p.get("success"):
            configuration = event.event_id.get("configuration") or {}
            self.state.failed_targets.append(
                FailedTarget(label=label, config_id=configuration.get("id"))
            )
            return

        if not is_requested(label, self.state.build_patterns):
            return
        set_ids = [
            str(file_set["id"])
            for group in p.get("outputGroup") or []
            for file_set in group.get("fileSets") or []
            if file_set.get("id")
        ]
        if set_ids:
            self.state.top_level_output_sets.setdefault(label, set_ids)

    def _on_test_summary(self, event: BuildEvent) -> None:
        p = event.payload
        label = str(event.event_id.get("label", ""))
        total_duration = as_int(p.get("totalRunDurationMillis")) or duration_ms(
            p.get("totalRunDuration")
        )
        self.state.test_summaries[label] = TestSummary(
            label=label,
            status=TestStatus.parse(p.get("overallStatus")),
            total_run_count=as_int(p.get("totalRunCount")),
            run_count=as_int(p.get("runCount")),
            attempt_count=as_int(p.get("attemptCount")),
            shard_count=as_int(p.get("shardCount")),
            total_num_cached=as_int(p.get("totalNumCached")),
            passed=_file_refs(p.get("passed")),
            failed=_file_refs(p.get("failed")),
            first_start_time_ms=millis_field(p, "firstStartTimeMillis", "firstStartTime"),
            last_stop_time_ms=millis_field(p, "lastStopTimeMillis", "lastStopTime"),
            total_run_duration_ms=total_duration,
        )

    def _on_problem(self, event: BuildEvent) -> None:
        self.state.problems.append(
            Problem(
                kind=ProblemKind.PROBLEM,
                message=str(event.payload.get("message", "")),
                label=str(event.event_id.get("label", "")),
            )
        )

    def _on_aborted(self, event: BuildEvent) -> None:
        p = event.payload
        self.state.problems.append(
            Problem(
                kind=ProblemKind.ABORTED,
                reason=str(p.get("reason", "")),
                message=str(p.get("description", "")),
                label=str(event.event_id.get("label", "")),
            )
        )

    # ------------------------------------------------------------------
    # Single-purpose slots
    # ------------------------------------------------------------------

    def _on_workspace_status(self, event: BuildEvent) -> None:
        self.state.workspace_status = {
            str(item.get("key", "")): str(item.get("value", ""))
            for item in event.payload.get("item") or []
            if isinstance(item, dict)
        }

    def _on_configuration(self, event: BuildEvent) -> None:
        config_id = str(event.event_id.get("id", ""))
        if not config_id or config_id in self.state.configurations:
            return
        p = event.payload
        self.state.configurations[config_id] = Configuration(
            mnemonic=str(p.get("mnemonic", "")),
            platform_name=str(p.get("platformName", "")),
            cpu=str(p.get("cpu", "")),
            is_tool=bool(p.get("isTool")),
            make_variables={
                str(k): str(v) for k, v in (p.get("makeVariable") or {}).items()
            },
        )

    def _on_build_metrics(self, event: BuildEvent) -> None:
        p = event.payload

        def section(name: str) -> dict[str, Any]:
            value = p.get(name)
            return value if isinstance(value, dict) else {}

        timing = section("timingMetrics")
        self.state.build_metrics = BuildMetrics(
            actions_created=as_int(section("actionSummary").get("actionsCreated")),
            actions_executed=as_int(section("actionSummary").get("actionsExecuted")),
            wall_time_ms=as_int(timing.get("wallTimeInMs")),
            cpu_time_ms=as_int(timing.get("cpuTimeInMs")),
            analysis_phase_time_ms=as_int(timing.get("analysisPhaseTimeInMs")),
            execution_phase_time_ms=as_int(timing.get("executionPhaseTimeInMs")),
            packages_loaded=as_int(section("packageMetrics").get("packagesLoaded")),
            targets_configured=as_int(section("targetMetrics").get("targetsConfigured")),
            used_heap_size_post_build=as_int(
                section("memoryMetrics").get("usedHeapSizePostBuild")
            ),
            raw=p,
        )

    def _on_build_tool_logs(self, event: BuildEvent) -> None:
        self.state.build_tool_logs = BuildToolLogs(
            log=[
                LogFile(
                    name=str(entry.get("name", "")),
                    uri=str(entry.get("uri", "")),
                    contents=str(entry.get("contents", "")),
                )
                for entry in event.payload.get("log") or []
                if isinstance(entry, dict)
            ]
        )

    def _on_options_parsed(self, event: BuildEvent) -> None:
        p = event.payload
        self.state.options_parsed = OptionsParsed(
            startup_options=as_str_list(p.get("startupOptions")),
            explicit_startup_options=as_str_list(p.get("explicitStartupOptions")),
            cmd_line=as_str_list(p.get("cmdLine")),
            explicit_cmd_line=as_str_list(p.get("explicitCmdLine")),
            tool_tag=str(p.get("toolTag", "")),
        )

    def _on_structured_command_line(self, event: BuildEvent) -> None:
        p = event.payload
        label = p.get("commandLineLabel", "")
        if label != CANONICAL_COMMAND_LINE:
            return
        self.state.structured_command_line = CommandLine(
            command_line_label=label,
            sections=[s for s in p.get("sections") or [] if isinstance(s, dict)],
        )

    def _on_pattern(self, event: BuildEvent) -> None:
        self.state.build_patterns.extend(as_str_list(event.event_id.get("pattern")))

    def _on_named_set(self, event: BuildEvent) -> None:
        set_id = str(event.event_id.get("id", ""))
        if not set_id or set_id in self.state.named_sets:
            return
        p = event.payload
        self.state.named_sets[set_id] = NamedSetOfFiles(
            files=[
                FileRef(
                    name=str(f.get("name", "")),
                    uri=str(f.get("uri", "")),
                    path_prefix=as_str_list(f.get("pathPrefix")),
                )
                for f in p.get("files") or []
                if isinstance(f, dict)
            ],
            file_sets=[
                str(ref["id"])
                for ref in p.get("fileSets") or []
                if isinstance(ref, dict) and ref.get("id")
            ],
        )

    def _on_convenience_symlinks(self, event: BuildEvent) -> None:
        self.state.convenience_symlinks.extend(
            ConvenienceSymlink(
                path=str(link.get("path", "")),
                action=str(link.get("action", "")),
                target=str(link.get("target", "")),
            )
            for link in event.payload.get("convenienceSymlinks") or []
            if isinstance(link, dict)
        )

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _on_progress(self, event: BuildEvent) -> None:
        p = event.payload or {}
        text = str(p.get("stderr") or p.get("stdout") or "")
        if not text:
            return

        for subject, strategy in iter_strategies(text):
            stem = file_stem(subject)
            if not stem:
                continue
            # Late attach only to an action whose output is the very path
            # the line names; a shared stem alone stays in the pending cache
            waiting = self._awaiting_strategy.get(stem, [])
            owner = next(
                (a for a in waiting if path_ends_with(a.primary_output, subject)), None
            )
            if owner is None:
                self.state.strategy_by_stem[stem] = strategy
                continue
            owner.strategy = strategy
            waiting.remove(owner)
            if not waiting:
                del self._awaiting_strategy[stem]

        excerpt = "\n".join(extract_log_lines(text)).strip()
        if not excerpt:
            return
        for child in event.children:
            label = (child.get("actionCompleted") or {}).get("label")
            if not label:
                continue
            action = self._awaiting_stderr.pop(label, None)
            if action is not None:
                action.stderr_content = excerpt
            else:
                self.state.progress_stderr[label] = excerpt
