"""Build-state records reconstructed from the event stream.

Values that never change after they arrive are frozen.  ``Action`` is the
one mutable record: strategy and stderr text may be attached after the
action was recorded, when a correlated progress event shows up late.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class ActionDetailPolicy(str, Enum):
    """How much per-action detail (argv, stderr) to capture."""

    NONE = "none"
    FAILED = "failed"
    ALL = "all"

    def wants_details(self, success: bool) -> bool:
        if self is ActionDetailPolicy.ALL:
            return True
        return self is ActionDetailPolicy.FAILED and not success


class TestStatus(str, Enum):
    """Overall status of a test target."""

    __test__ = False

    NO_STATUS = "NO_STATUS"
    PASSED = "PASSED"
    FLAKY = "FLAKY"
    TIMEOUT = "TIMEOUT"
    FAILED = "FAILED"
    INCOMPLETE = "INCOMPLETE"
    REMOTE_FAILURE = "REMOTE_FAILURE"
    FAILED_TO_BUILD = "FAILED_TO_BUILD"
    TOOL_HALTED_BEFORE_TESTING = "TOOL_HALTED_BEFORE_TESTING"

    @classmethod
    def parse(cls, value: Any) -> TestStatus:
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.NO_STATUS


class BuildStarted(BaseModel):
    model_config = ConfigDict(frozen=True)

    uuid: str = ""
    start_time_ms: int = 0
    build_tool_version: str = ""
    command: str = ""
    working_directory: str = ""
    workspace_directory: str = ""
    options_description: str = ""
    server_pid: int = 0


class BuildFinished(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_success: bool = False
    exit_code_name: str = ""
    exit_code: int = 0
    finish_time_ms: int = 0


class Action(BaseModel):
    """A single completed build action."""

    success: bool = False
    mnemonic: str = ""
    label: str = ""
    primary_output: str = ""
    argv: list[str] = []
    stderr_content: str | None = None
    strategy: str | None = None
    start_time_ms: int = 0
    duration_ms: int = 0
    exit_code: int = 0


class TestSummary(BaseModel):
    """Aggregated result of one test target (upserted by label)."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    label: str
    status: TestStatus = TestStatus.NO_STATUS
    total_run_count: int = 0
    run_count: int = 0
    attempt_count: int = 0
    shard_count: int = 0
    total_num_cached: int = 0
    passed: list[str] = []
    failed: list[str] = []
    first_start_time_ms: int = 0
    last_stop_time_ms: int = 0
    total_run_duration_ms: int = 0


class ProblemKind(str, Enum):
    PROBLEM = "problem"
    ABORTED = "aborted"


class Problem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ProblemKind = ProblemKind.PROBLEM
    reason: str = ""
    message: str = ""
    label: str = ""


class FailedTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    config_id: str | None = None


class FileRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    uri: str = ""
    path_prefix: list[str] = []


class NamedSetOfFiles(BaseModel):
    """A node of the output file-set graph."""

    model_config = ConfigDict(frozen=True)

    files: list[FileRef] = []
    file_sets: list[str] = []


class Configuration(BaseModel):
    model_config = ConfigDict(frozen=True)

    mnemonic: str = ""
    platform_name: str = ""
    cpu: str = ""
    is_tool: bool = False
    make_variables: dict[str, str] = {}


class OptionsParsed(BaseModel):
    model_config = ConfigDict(frozen=True)

    startup_options: list[str] = []
    explicit_startup_options: list[str] = []
    cmd_line: list[str] = []
    explicit_cmd_line: list[str] = []
    tool_tag: str = ""


class CommandLine(BaseModel):
    """A structured command line (only the ``canonical`` one is kept)."""

    model_config = ConfigDict(frozen=True)

    command_line_label: str = ""
    sections: list[dict[str, Any]] = []

    def to_argv(self) -> list[str]:
        """Flatten chunk lists and option lists into one argument vector."""
        argv: list[str] = []
        for section in self.sections:
            chunk_list = section.get("chunkList") or {}
            argv.extend(str(c) for c in chunk_list.get("chunk", []))
            option_list = section.get("optionList") or {}
            for option in option_list.get("option", []):
                combined = option.get("combinedForm")
                if combined:
                    argv.append(combined)
        return argv


class ConvenienceSymlink(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str = ""
    action: str = ""
    target: str = ""


class BuildMetrics(BaseModel):
    """Cumulative numeric metrics, reported once near the end of a build."""

    model_config = ConfigDict(frozen=True)

    actions_created: int = 0
    actions_executed: int = 0
    wall_time_ms: int = 0
    cpu_time_ms: int = 0
    analysis_phase_time_ms: int = 0
    execution_phase_time_ms: int = 0
    packages_loaded: int = 0
    targets_configured: int = 0
    used_heap_size_post_build: int = 0
    raw: dict[str, Any] = {}


class LogFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    uri: str = ""
    contents: str = ""


class BuildToolLogs(BaseModel):
    model_config = ConfigDict(frozen=True)

    log: list[LogFile] = []
