"""bep_analyzer data models — all Pydantic v2."""

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
from bep_analyzer.models.live import VALID_TRANSITIONS, LiveState, LiveView
from bep_analyzer.models.progress import ProgressInfo, RunningAction
from bep_analyzer.models.snapshot import ReportSnapshot

__all__ = [
    # events
    "BuildEvent",
    "EventKind",
    # build records
    "Action",
    "ActionDetailPolicy",
    "BuildFinished",
    "BuildMetrics",
    "BuildStarted",
    "BuildToolLogs",
    "CommandLine",
    "Configuration",
    "ConvenienceSymlink",
    "FailedTarget",
    "FileRef",
    "LogFile",
    "NamedSetOfFiles",
    "OptionsParsed",
    "Problem",
    "ProblemKind",
    "TestStatus",
    "TestSummary",
    # live
    "LiveState",
    "LiveView",
    "VALID_TRANSITIONS",
    # progress
    "ProgressInfo",
    "RunningAction",
    # snapshot
    "ReportSnapshot",
]
