"""Workflow state definitions shared by ingest nodes."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, TypedDict

from finanalyzer.domain.errors import FinAnalyzerError
from finanalyzer.domain.models.report import FinancialReport


class IngestState(TypedDict, total=False):
    filename: str
    pdf_bytes: bytes
    size: int
    digest: str
    fetch_market_context: bool

    report: Optional[FinancialReport]
    error: Optional[FinAnalyzerError]
    stage_order: List[str]

    logs: List[str]
    errors: List[str]


@dataclass
class IngestOutcome:
    """Registered report or the tagged error that stopped the pipeline."""

    report: Optional[FinancialReport] = None
    error: Optional[FinAnalyzerError] = None
    logs: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None
