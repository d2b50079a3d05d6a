"""Workflow dependency container."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from finanalyzer.infrastructure.llm.gemini_client import ExtractionClient
from finanalyzer.library.store import ReportLibrary


@dataclass
class WorkflowContext:
    """Holds heavy-weight dependencies shared by ingest nodes."""

    library: ReportLibrary
    client: Optional[ExtractionClient]

    async def aclose(self) -> None:
        """Release any dependencies that need explicit cleanup."""
        if self.client is not None:
            await self.client.aclose()
