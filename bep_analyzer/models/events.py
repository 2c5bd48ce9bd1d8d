"""Canonical build event model.

Every record decoded from either wire format is normalized into a single
``BuildEvent`` shape before it reaches the accumulator.  The raw id object
is kept for the handlers that need fields from it (labels, set ids,
patterns); the payload is already unwrapped from whichever layout the
producer used.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class EventKind(str, Enum):
    """Event kinds the accumulator understands."""

    BUILD_STARTED = "build_started"
    BUILD_FINISHED = "build_finished"
    ACTION_COMPLETED = "action_completed"
    TARGET_COMPLETED = "target_completed"
    TEST_SUMMARY = "test_summary"
    PROBLEM = "problem"
    ABORTED = "aborted"
    WORKSPACE_STATUS = "workspace_status"
    CONFIGURATION = "configuration"
    BUILD_METRICS = "build_metrics"
    BUILD_TOOL_LOGS = "build_tool_logs"
    OPTIONS_PARSED = "options_parsed"
    STRUCTURED_COMMAND_LINE = "structured_command_line"
    PATTERN = "pattern"
    NAMED_SET = "named_set"
    CONVENIENCE_SYMLINKS = "convenience_symlinks"
    PROGRESS = "progress"
    UNKNOWN = "unknown"


class BuildEvent(BaseModel):
    """One normalized event from the stream.

    ``event_id`` is the inner id object for the kind (e.g. the value of
    ``id.actionCompleted``), not the whole ``id`` mapping.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    id_key: str = ""
    event_id: dict[str, Any] = {}
    payload: dict[str, Any] | None = None
    children: list[dict[str, Any]] = []
    last_message: bool = False
    raw: dict[str, Any] = {}

    @property
    def is_terminus(self) -> bool:
        """Whether this event logically ends the stream."""
        return self.kind == EventKind.BUILD_FINISHED or self.last_message
