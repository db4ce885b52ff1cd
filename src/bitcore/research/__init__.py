"""Research port and telemetry package."""

from bitcore.research.ports import (
    DEFAULT_BREADTH,
    DEFAULT_DEPTH,
    ResearchEngine,
    ResearchReport,
    ResearchRequest,
)
from bitcore.research.telemetry import TelemetryChannel, TelemetryEvent

__all__ = [
    "DEFAULT_BREADTH",
    "DEFAULT_DEPTH",
    "ResearchEngine",
    "ResearchReport",
    "ResearchRequest",
    "TelemetryChannel",
    "TelemetryEvent",
]
