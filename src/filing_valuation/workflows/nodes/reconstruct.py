"""LangGraph node for statement reconstruction."""
from __future__ import annotations

from filing_valuation.domain.models.financials import STATEMENT_TYPES, FinancialStatements
from filing_valuation.workflows.context import WorkflowContext
from filing_valuation.workflows.state import ValuationState


def run(state: ValuationState, context: WorkflowContext) -> ValuationState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    symbol = state["symbol"]
    facts = state.get("facts") or {}

    logs.append("Reconstruct -> building annual, quarterly and TTM statements")
    try:
        statements = context.reconstructor.reconstruct(symbol, facts)
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Statement reconstruction failed: {exc}")
        statements = FinancialStatements(symbol=symbol)

    issues = [issue for kind in STATEMENT_TYPES for issue in statements.get(kind).quality_issues]
    if statements.is_empty():
        errors.append("No statements could be reconstructed from the available facts.")
    state["statements"] = statements
    state["quality_issues"] = issues
    if issues:
        logs.append(f"Reconstruct -> {len(issues)} quarter-sum inconsistencies flagged")
    return state
