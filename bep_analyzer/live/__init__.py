"""Live ingestion: tailing, state machine, and render modes."""

from bep_analyzer.live.ingestor import InvalidTransitionError, LiveIngestor
from bep_analyzer.live.modes import (
    DashboardMode,
    LogLineMode,
    RenderMode,
    StatusLineMode,
    create_mode,
)
from bep_analyzer.live.tailer import FileTailer, SourceUnavailableError

__all__ = [
    "DashboardMode",
    "FileTailer",
    "InvalidTransitionError",
    "LiveIngestor",
    "LogLineMode",
    "RenderMode",
    "SourceUnavailableError",
    "StatusLineMode",
    "create_mode",
]
