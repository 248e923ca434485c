"""LangGraph node for multi-method valuation."""
from __future__ import annotations

from filing_valuation.domain.models.valuation import FinancialsSummary
from filing_valuation.workflows.context import WorkflowContext
from filing_valuation.workflows.state import ValuationState


def run(state: ValuationState, context: WorkflowContext) -> ValuationState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    quote = state.get("quote")
    summary = state.get("summary") or FinancialsSummary()

    if quote is None:
        errors.append("Valuation skipped because no quote is available.")
        return state

    engine = context.valuation_engine
    logs.append("Valuation -> running nine methods")
    try:
        valuation = engine.run(
            quote,
            summary,
            overrides=state.get("manual_overrides"),
            growth=state.get("growth_overrides"),
            historical=state.get("historical_multiples"),
        )
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Valuation engine failed: {exc}")
        return state

    state["valuation"] = valuation
    state["missing_fields"] = engine.missing_data_fields(quote, summary, state.get("manual_overrides"))
    try:
        state["category"] = engine.category_for(valuation)
    except ValueError as exc:
        errors.append(f"Valuation category unavailable: {exc}")
    logs.append(
        f"Valuation -> fair value {valuation.average_intrinsic_value:.2f} "
        f"({valuation.upside_percent:+.1f}%, {valuation.recommendation})"
    )
    return state
