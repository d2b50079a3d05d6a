"""Ingest node inserting the extracted report into the library."""
from __future__ import annotations

from finanalyzer.domain.errors import DuplicateIdentity
from finanalyzer.workflows.context import WorkflowContext
from finanalyzer.workflows.state import IngestState


async def run(state: IngestState, context: WorkflowContext) -> IngestState:
    logs = state.setdefault("logs", [])
    report = state.get("report")
    if state.get("error") is not None or report is None:
        logs.append("RegisterAgent -> skipped (no validated report)")
        return state

    try:
        context.library.add(report)
    except DuplicateIdentity as exc:
        state["error"] = exc
        logs.append(f"RegisterAgent -> {exc.message}")
        return state
    logs.append(f"RegisterAgent -> added {report.label} as {report.id}")
    return state
