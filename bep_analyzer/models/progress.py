"""Facts extracted from the build tool's free-text progress stream."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class RunningAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    elapsed_seconds: int = 0
    strategy: str | None = None

    @property
    def elapsed(self) -> str:
        return f"{self.elapsed_seconds}s"


class ProgressInfo(BaseModel):
    """Parsed view of the most recent progress frame.

    ``strategies`` maps a normalized file stem to the execution strategy
    seen for it; it is gathered from every frame of the payload, because a
    strategy printed in an overwritten frame is still a valid fact.
    """

    model_config = ConfigDict(frozen=True)

    completed: int = 0
    total: int = 0
    current_action: str = ""
    running_actions: list[RunningAction] = []
    log_lines: list[str] = []
    strategies: dict[str, str] = {}

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return max(0, min(100, (self.completed * 100) // self.total))
