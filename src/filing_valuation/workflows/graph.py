"""LangGraph workflow assembly for the reconstruction and valuation pipeline."""
from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from langgraph.graph import END, StateGraph

from filing_valuation.domain.models.valuation import (
    GrowthOverrides,
    HistoricalMultiples,
    ManualOverrides,
    Quote,
)
from filing_valuation.domain.services.reconstruction import StatementReconstructor
from filing_valuation.domain.services.summary import FinancialsSummarizer
from filing_valuation.domain.services.valuation import ValuationEngine
from filing_valuation.infrastructure.data_providers.local_files import JsonFactStore, JsonQuoteStore
from filing_valuation.settings.config import Config
from filing_valuation.workflows import context as context_module
from filing_valuation.workflows.blueprint import StageSpec, build_default_stages, check_stage_order
from filing_valuation.workflows.state import ValuationState


class ValuationWorkflow:
    """Compose LangGraph nodes into a runnable workflow."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._context = self._build_context()
        self._stages: List[StageSpec] = build_default_stages()
        self._graph = self._build_graph()

    @property
    def context(self) -> context_module.WorkflowContext:
        return self._context

    def _build_context(self) -> context_module.WorkflowContext:
        quote_store: Optional[JsonQuoteStore] = None
        if self._config.quotes_file.exists():
            quote_store = JsonQuoteStore(self._config.quotes_file)

        return context_module.WorkflowContext(
            config=self._config,
            fact_store=JsonFactStore(self._config.facts_dir),
            quote_store=quote_store,
            reconstructor=StatementReconstructor(
                annual_limit=self._config.annual_limit,
                quarterly_limit=self._config.quarterly_limit,
            ),
            summarizer=FinancialsSummarizer(),
            valuation_engine=ValuationEngine(self._config.valuation),
        )

    def _build_graph(self):
        builder = StateGraph(dict)

        if not self._stages:
            raise RuntimeError("Workflow blueprint is empty; cannot build LangGraph.")
        check_stage_order(self._stages)

        for stage in self._stages:
            builder.add_node(stage.key, self._wrap(stage.handler))

        # Serialize execution in declared stage order to avoid concurrent state writes.
        builder.set_entry_point(self._stages[0].key)
        for current, nxt in zip(self._stages, self._stages[1:]):
            builder.add_edge(current.key, nxt.key)
        builder.add_edge(self._stages[-1].key, END)

        return builder.compile(checkpointer=None)

    def _wrap(self, func: Callable[[ValuationState, context_module.WorkflowContext], ValuationState]):
        def wrapper(state: Dict[str, Any]) -> Dict[str, Any]:
            return func(state, self._context)  # type: ignore[arg-type, return-value]

        return wrapper

    def run(
        self,
        symbol: str,
        quote: Optional[Quote] = None,
        *,
        manual_overrides: Optional[ManualOverrides] = None,
        growth_overrides: Optional[GrowthOverrides] = None,
        historical: Optional[HistoricalMultiples] = None,
    ) -> ValuationState:
        """Execute the workflow for a single symbol."""
        initial_state: ValuationState = {
            "symbol": symbol.upper(),
            "run_date": datetime.now(timezone.utc).date().isoformat(),
            "logs": [],
            "errors": [],
            "extras": {},
            "stage_order": [stage.key for stage in self._stages],
        }
        if quote is not None:
            initial_state["quote"] = quote
        if manual_overrides is not None and not manual_overrides.is_empty():
            initial_state["manual_overrides"] = manual_overrides
        if growth_overrides is not None:
            initial_state["growth_overrides"] = growth_overrides
        if historical is not None:
            initial_state["historical_multiples"] = historical
        result: ValuationState = self._graph.invoke(initial_state)
        return result

    def persist_state(self, state: ValuationState, path: Path) -> None:
        """Serialize the workflow state to disk for debugging or auditing."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {key: value for key, value in state.items() if key != "facts"}
        path.write_text(json.dumps(payload, default=_json_serializer, indent=2), encoding="utf-8")

    def describe_stages(self) -> List[str]:
        """Return human-readable workflow stage descriptions."""
        return [f"{stage.key}: {stage.description}" for stage in self._stages]


def _json_serializer(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)
