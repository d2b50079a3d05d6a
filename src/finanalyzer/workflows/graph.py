"""LangGraph workflow assembly for the PDF ingest pipeline."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List

from langgraph.graph import END, StateGraph

from finanalyzer.workflows.blueprint import StageSpec, build_default_stages
from finanalyzer.workflows.context import WorkflowContext
from finanalyzer.workflows.state import IngestOutcome, IngestState

logger = logging.getLogger(__name__)


class IngestWorkflow:
    """Compose ingest nodes into a runnable workflow."""

    def __init__(self, context: WorkflowContext) -> None:
        self._context = context
        self._stages: List[StageSpec] = build_default_stages()
        self._graph = self._build_graph()

    @property
    def context(self) -> WorkflowContext:
        return self._context

    def _build_graph(self):
        builder = StateGraph(dict)

        if not self._stages:
            raise RuntimeError("Workflow blueprint is empty; cannot build LangGraph.")

        for stage in self._stages:
            builder.add_node(stage.key, self._wrap(stage.handler))

        # Serialize execution in declared stage order; library writes must not interleave.
        builder.set_entry_point(self._stages[0].key)
        for current, nxt in zip(self._stages, self._stages[1:]):
            builder.add_edge(current.key, nxt.key)
        builder.add_edge(self._stages[-1].key, END)

        return builder.compile(checkpointer=None)

    def _wrap(self, func: Callable[[IngestState, WorkflowContext], Awaitable[IngestState]]):
        async def wrapper(state: Dict[str, Any]) -> Dict[str, Any]:
            return await func(state, self._context)  # type: ignore[arg-type]

        return wrapper

    async def run(
        self,
        pdf_bytes: bytes,
        *,
        filename: str = "report.pdf",
        fetch_market_context: bool = False,
    ) -> IngestOutcome:
        """Run the ingest stages for one document; the library is touched only on success."""
        initial_state: IngestState = {
            "filename": filename,
            "pdf_bytes": pdf_bytes,
            "fetch_market_context": fetch_market_context,
            "report": None,
            "error": None,
            "logs": [],
            "errors": [],
            "stage_order": [stage.key for stage in self._stages],
        }
        result: IngestState = await self._graph.ainvoke(initial_state)  # type: ignore[assignment]
        error = result.get("error")
        if error is not None:
            logger.warning("Ingest of %s failed: %s (%s)", filename, error.message, error.kind)
        return IngestOutcome(
            report=None if error is not None else result.get("report"),
            error=error,
            logs=list(result.get("logs", [])),
            warnings=list(result.get("errors", [])),
        )

    def describe_stages(self) -> List[str]:
        """Return human-readable workflow stage descriptions."""
        return [f"{stage.key}: {stage.description}" for stage in self._stages]
