"""bep-analyzer: Build Event Protocol ingestion, after the fact or live.

  - Decodes newline-delimited JSON and length-prefixed binary event streams
  - Accumulates events into one build state, frozen into report snapshots
  - Resolves nested output file sets for requested targets
  - Follows a growing event file with dashboard, status-line, or log-line output
  - Replays a completed stream with reconstructed pacing and backpressure
"""

__version__ = "0.1.0"
__description__ = "Build Event Protocol analyzer with live ingestion and stream replay"

from bep_analyzer.core.accumulator import StateAccumulator
from bep_analyzer.core.decoder import EventDecoder
from bep_analyzer.live.ingestor import LiveIngestor
from bep_analyzer.simulator.simulator import StreamSimulator
from bep_analyzer.cli.app import app as cli

__all__ = [
    "EventDecoder",
    "LiveIngestor",
    "StateAccumulator",
    "StreamSimulator",
    "cli",
    "__version__",
]
