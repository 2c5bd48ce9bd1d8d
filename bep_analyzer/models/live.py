"""Live ingestion state machine models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from bep_analyzer.models.progress import ProgressInfo


class LiveState(str, Enum):
    """Lifecycle of a live ingestion session."""

    WAITING_FOR_SOURCE = "waiting_for_source"
    RUNNING = "running"
    FINISHED = "finished"


# FINISHED is terminal; WAITING -> FINISHED covers cancellation before any event.
VALID_TRANSITIONS: dict[LiveState, set[LiveState]] = {
    LiveState.WAITING_FOR_SOURCE: {LiveState.RUNNING, LiveState.FINISHED},
    LiveState.RUNNING: {LiveState.FINISHED},
    LiveState.FINISHED: set(),  # terminal
}


class LiveView(BaseModel):
    """What a render mode is allowed to see on each tick or event.

    Built under the ingestor's lock and handed out frozen, so a renderer
    never observes a half-applied event.
    """

    model_config = ConfigDict(frozen=True)

    state: LiveState
    elapsed_seconds: float = 0.0
    spinner: str = ""
    recent_activity: tuple[str, ...] = ()
    progress: ProgressInfo = ProgressInfo()
    actions_completed: int = 0
    actions_failed: int = 0
    problem_count: int = 0
    command: str = ""
    cancelled: bool = False
    overall_success: bool | None = None
