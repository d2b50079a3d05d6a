"""Ingest node attaching grounded market context to a freshly registered report."""
from __future__ import annotations

from dataclasses import replace

from finanalyzer.domain.errors import EnrichmentFailed
from finanalyzer.workflows.context import WorkflowContext
from finanalyzer.workflows.state import IngestState


async def run(state: IngestState, context: WorkflowContext) -> IngestState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    report = state.get("report")

    if not state.get("fetch_market_context"):
        return state
    if state.get("error") is not None or report is None or context.client is None:
        logs.append("MarketContextAgent -> skipped")
        return state

    logs.append(f"MarketContextAgent -> grounded search for {report.company_name} ({report.ticker})")
    try:
        market = await context.client.market_context(report.ticker, report.company_name)
    except EnrichmentFailed as exc:
        errors.append(f"Market context failed: {exc.message}")
        return state
    enriched = replace(report, market_context=market)
    context.library.update(enriched)
    state["report"] = enriched
    logs.append(f"MarketContextAgent -> attached {len(market.insights)} sources")
    return state
