"""LangGraph node resolving the market quote."""
from __future__ import annotations

import logging

from filing_valuation.workflows.context import WorkflowContext
from filing_valuation.workflows.state import ValuationState

logger = logging.getLogger(__name__)


def run(state: ValuationState, context: WorkflowContext) -> ValuationState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    symbol = state["symbol"]

    if state.get("quote") is not None:
        logs.append("QuoteLoad -> using caller-supplied quote")
        return state
    if context.quote_store is None:
        errors.append("No quote supplied and no quote store configured.")
        state["quote"] = None
        return state

    logs.append("QuoteLoad -> looking up quote")
    try:
        state["quote"] = context.quote_store.fetch(symbol)
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Quote lookup failed for %s: %s", symbol, exc)
        errors.append(f"Quote lookup failed: {exc}")
        state["quote"] = None
    return state
