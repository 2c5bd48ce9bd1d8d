"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and BEP_ANALYZER_* environment variables.  CLI
options override these values per invocation.
"""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler

from bep_analyzer.models.build import ActionDetailPolicy


class AnalyzerSettings(BaseSettings):
    """Analyzer configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BEP_ANALYZER_LOG_LEVEL=DEBUG
        export BEP_ANALYZER_ACTION_DETAILS=all
        export BEP_ANALYZER_PROTO_MODULE=my_protos.build_event_stream_pb2
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BEP_ANALYZER_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "WARNING"

    # Accumulation
    action_details: ActionDetailPolicy = ActionDetailPolicy.FAILED

    # Decoding: "json" or "pb"
    wire_format: str = "json"

    # Binary decoding: generated from the build tool's build_event_stream.proto
    proto_module: str = "build_event_stream_pb2"
    proto_message: str = "BuildEvent"

    # Live ingestion
    refresh_hz: float = 10.0
    poll_interval_seconds: float = 0.25
    recent_activity_limit: int = 5
    running_actions_limit: int = 5

    # Simulator
    speed_factor: float = 1.0
    max_delay_ms: float = float("inf")
    interval_ms: float = 0.0

    @property
    def tick_interval_seconds(self) -> float:
        """Seconds between live render ticks."""
        return 1.0 / max(self.refresh_hz, 0.1)


def configure_logging(level: str | int = "WARNING") -> None:
    """Route library logging through a Rich handler on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# Module-level singleton; import as `from bep_analyzer.config import settings`
settings = AnalyzerSettings()
