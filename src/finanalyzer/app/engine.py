"""Inbound facade: ingest, library access, comparison, export and enrichment."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, List, Optional

from finanalyzer.domain.errors import EnrichmentFailed
from finanalyzer.domain.models.report import FinancialReport
from finanalyzer.domain.services.comparison import ComparisonEngine, ComparisonResult
from finanalyzer.infrastructure.db.kv_store import KeyValueStore, SQLiteKeyValueStore
from finanalyzer.infrastructure.llm.gemini_client import ExtractionClient
from finanalyzer.infrastructure.llm.live_session import LiveAnalystCallbacks, LiveAnalystSession
from finanalyzer.library.queries import ALL_TYPES, filter_by_report_type, search_reports
from finanalyzer.library.store import ReportLibrary
from finanalyzer.settings.config import Config
from finanalyzer.workflows.context import WorkflowContext
from finanalyzer.workflows.graph import IngestWorkflow
from finanalyzer.workflows.state import IngestOutcome

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentOutcome:
    """Updated report, or the failure that left the library untouched."""

    report: FinancialReport
    error: Optional[EnrichmentFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AnalysisEngine:
    """Single entry point used by presentation layers and the CLI."""

    def __init__(
        self,
        library: ReportLibrary,
        client: Optional[ExtractionClient],
        *,
        comparison: Optional[ComparisonEngine] = None,
    ) -> None:
        self.library = library
        self._client = client
        self._comparison = comparison or ComparisonEngine()
        self._workflow = IngestWorkflow(WorkflowContext(library=library, client=client))

    @classmethod
    def from_config(cls, config: Config, *, store: Optional[KeyValueStore] = None) -> "AnalysisEngine":
        if store is None:
            store = SQLiteKeyValueStore(f"sqlite:///{config.library_path}", echo=config.sqlite_echo)
        client: Optional[ExtractionClient]
        try:
            client = ExtractionClient.from_config(config)
        except ValueError:
            logger.info("No API key configured; extraction and enrichment are disabled.")
            client = None
        return cls(ReportLibrary(store), client)

    @property
    def client(self) -> Optional[ExtractionClient]:
        return self._client

    # ------
    # Ingest
    # ------
    async def ingest(
        self,
        pdf_bytes: bytes,
        *,
        filename: str = "report.pdf",
        fetch_market_context: bool = False,
    ) -> IngestOutcome:
        return await self._workflow.run(
            pdf_bytes,
            filename=filename,
            fetch_market_context=fetch_market_context,
        )

    def describe_stages(self) -> List[str]:
        return self._workflow.describe_stages()

    # ----------
    # Comparison
    # ----------
    def candidates(self, report_type: str = ALL_TYPES, query: str = "") -> List[FinancialReport]:
        """Library listing narrowed by report type and search text; never mutates the library."""
        return search_reports(filter_by_report_type(self.library.list(), report_type), query)

    def compare(self, baseline_id: str, benchmark_id: str) -> ComparisonResult:
        baseline = self.library.require(baseline_id)
        benchmark = self.library.require(benchmark_id)
        return self._comparison.compare(baseline, benchmark)

    def export_table(self, result: ComparisonResult, exported_at: Optional[datetime] = None) -> List[List[Any]]:
        return self._comparison.export_table(result, exported_at)

    # ----------
    # Enrichment
    # ----------
    async def enrich_market_context(self, report_id: str) -> EnrichmentOutcome:
        report = self.library.require(report_id)
        try:
            client = self._require_client("market_context")
            market = await client.market_context(report.ticker, report.company_name)
        except EnrichmentFailed as exc:
            return self._failed(report, exc)
        return self._apply(replace(report, market_context=market))

    async def enrich_audio_briefing(self, report_id: str) -> EnrichmentOutcome:
        report = self.library.require(report_id)
        try:
            client = self._require_client("audio_briefing")
            briefing = await client.audio_briefing(report)
        except EnrichmentFailed as exc:
            return self._failed(report, exc)
        return self._apply(replace(report, audio_briefing=briefing))

    async def enrich_visualized_guidance(self, report_id: str, *, aspect_ratio: str = "16:9") -> EnrichmentOutcome:
        report = self.library.require(report_id)
        try:
            client = self._require_client("visualized_guidance")
            image = await client.visualize_guidance(report, aspect_ratio=aspect_ratio)
        except EnrichmentFailed as exc:
            return self._failed(report, exc)
        return self._apply(replace(report, visualized_guidance=image))

    def live_analyst(self, report_id: str, callbacks: LiveAnalystCallbacks) -> LiveAnalystSession:
        report = self.library.require(report_id)
        return self._require_client("live_analyst").live_analyst(report, callbacks)

    async def aclose(self) -> None:
        self.library.close()
        if self._client is not None:
            await self._client.aclose()

    def _require_client(self, capability: str) -> ExtractionClient:
        if self._client is None:
            raise EnrichmentFailed(capability, "client is not configured; set POE_API_KEY")
        return self._client

    def _apply(self, report: FinancialReport) -> EnrichmentOutcome:
        self.library.update(report)
        return EnrichmentOutcome(report=report)

    @staticmethod
    def _failed(report: FinancialReport, error: EnrichmentFailed) -> EnrichmentOutcome:
        logger.warning("Enrichment for %s failed: %s", report.id, error.message)
        return EnrichmentOutcome(report=report, error=error)
