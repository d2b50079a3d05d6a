"""Ingest node validating the uploaded payload before any remote call."""
from __future__ import annotations

import hashlib

from finanalyzer.domain.errors import ExtractionRejected
from finanalyzer.infrastructure.llm.gemini_client import PDF_MAGIC
from finanalyzer.workflows.context import WorkflowContext
from finanalyzer.workflows.state import IngestState


async def run(state: IngestState, context: WorkflowContext) -> IngestState:
    logs = state.setdefault("logs", [])
    payload = state.get("pdf_bytes") or b""
    filename = state.get("filename") or "report.pdf"

    state["size"] = len(payload)
    if not payload:
        state["error"] = ExtractionRejected(f"{filename} is empty.")
        logs.append("ReadDocument -> rejected empty payload")
        return state
    if bytes(payload).lstrip()[:5] != PDF_MAGIC:
        state["error"] = ExtractionRejected(f"{filename} is not a PDF document.")
        logs.append("ReadDocument -> rejected non-PDF payload")
        return state

    state["digest"] = hashlib.sha256(payload).hexdigest()
    logs.append(f"ReadDocument -> {filename} ({len(payload)} bytes, sha256 {state['digest'][:12]})")
    return state
