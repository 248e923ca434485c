"""LangGraph node distilling statements into valuation inputs."""
from __future__ import annotations

from filing_valuation.domain.models.financials import FinancialStatements
from filing_valuation.domain.models.valuation import FinancialsSummary
from filing_valuation.workflows.context import WorkflowContext
from filing_valuation.workflows.state import ValuationState


def run(state: ValuationState, context: WorkflowContext) -> ValuationState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    statements = state.get("statements") or FinancialStatements(symbol=state["symbol"])

    logs.append("Summarize -> TTM figures, market ratios and growth rates")
    try:
        summary = context.summarizer.summarize(statements, state.get("quote"))
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Financials summary failed: {exc}")
        summary = FinancialsSummary()
    state["summary"] = summary
    state["data_confidence"] = context.valuation_engine.data_confidence(summary)
    if summary.source_period:
        logs.append(f"Summary based on {summary.source_period}")
    return state
