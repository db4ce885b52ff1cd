"""Research engine port and its request/report models."""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from bitcore.research.telemetry import TelemetryChannel

DEFAULT_DEPTH = 2
DEFAULT_BREADTH = 3


class ResearchRequest(BaseModel):
    """One research run request."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    query: str = Field(min_length=1)
    depth: int = Field(default=DEFAULT_DEPTH, ge=1, le=5)
    breadth: int = Field(default=DEFAULT_BREADTH, ge=1, le=5)
    username: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResearchReport(BaseModel):
    """Research engine output."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    query: str
    summary: str
    learnings: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResearchEngine(Protocol):
    """External research/LLM pipeline."""

    async def run(
        self, request: ResearchRequest, telemetry: TelemetryChannel | None
    ) -> ResearchReport:
        """Run one research request.

        Args:
            request: Research request.
            telemetry: Optional channel for progress events.
        """
