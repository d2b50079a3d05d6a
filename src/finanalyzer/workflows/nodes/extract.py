"""Ingest node calling the multimodal extractor."""
from __future__ import annotations

from finanalyzer.domain.errors import ExtractionError, ExtractionUnavailable, SchemaError
from finanalyzer.workflows.context import WorkflowContext
from finanalyzer.workflows.state import IngestState


async def run(state: IngestState, context: WorkflowContext) -> IngestState:
    logs = state.setdefault("logs", [])
    if state.get("error") is not None:
        logs.append("ExtractAgent -> skipped (document rejected)")
        return state

    if context.client is None:
        logs.append("ExtractAgent -> skipped (Gemini client not configured)")
        state["error"] = ExtractionUnavailable("Extraction client is not configured; set POE_API_KEY.")
        return state

    filename = state.get("filename") or "report.pdf"
    logs.append(f"ExtractAgent -> request structured extraction for {filename}")
    try:
        state["report"] = await context.client.extract(state["pdf_bytes"], filename=filename)
    except (ExtractionError, SchemaError) as exc:
        logs.append(f"ExtractAgent -> {exc.kind}: {exc.message}")
        state["error"] = exc
    return state
