"""Workflow blueprint describing ingest stages and their handlers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, TYPE_CHECKING

from finanalyzer.workflows.nodes import document, extract, market_context, register

if TYPE_CHECKING:
    from finanalyzer.workflows.context import WorkflowContext
    from finanalyzer.workflows.state import IngestState


@dataclass
class StageSpec:
    """Single LangGraph stage definition."""

    key: str
    description: str
    handler: Callable[["IngestState", "WorkflowContext"], Awaitable["IngestState"]]
    depends_on: List[str] = field(default_factory=list)


def build_default_stages() -> List[StageSpec]:
    """Return the ordered stages for the ingest workflow."""
    return [
        StageSpec(
            key="read_document",
            description="Check the payload is a PDF and fingerprint it for logs.",
            handler=document.run,
        ),
        StageSpec(
            key="extract",
            description="Send the PDF to Gemini with the report schema; validate and mint identity.",
            handler=extract.run,
            depends_on=["read_document"],
        ),
        StageSpec(
            key="register",
            description="Insert the validated report at the head of the library and activate it.",
            handler=register.run,
            depends_on=["extract"],
        ),
        StageSpec(
            key="market_context",
            description="Optionally attach grounded-search market context (fail-soft).",
            handler=market_context.run,
            depends_on=["register"],
        ),
    ]
