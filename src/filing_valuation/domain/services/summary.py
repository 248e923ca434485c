"""Distill reconstructed statements into valuation inputs.

Flow figures come from the TTM record when one exists, otherwise from the
latest annual record; balance figures from the newest quarter. Growth rates
are computed with pandas over the annual history (CAGR, YoY).
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from filing_valuation.domain.models.amount import Amount, partial_total
from filing_valuation.domain.models.financials import FinancialStatements, StatementRecord
from filing_valuation.domain.models.valuation import FinancialsSummary, Quote

logger = logging.getLogger(__name__)

CAGR_WINDOW_YEARS = 5


class FinancialsSummarizer:
    """Build a ``FinancialsSummary`` from statements and an optional quote."""

    def summarize(self, statements: FinancialStatements, quote: Optional[Quote] = None) -> FinancialsSummary:
        income = statements.income.ttm or statements.income.latest_annual
        cash_flow = statements.cash_flow.ttm or statements.cash_flow.latest_annual
        balance = statements.balance.latest_quarter or statements.balance.latest_annual

        def g(record: Optional[StatementRecord], key: str) -> Amount:
            return record.get(key) if record is not None else Amount()

        revenue = g(income, "revenue")
        net_income = g(income, "net_income")
        ocf = g(cash_flow, "operating_cash_flow")
        capex = abs(g(cash_flow, "capital_expenditures"))
        fcf = g(cash_flow, "free_cash_flow")
        if not fcf.present:
            fcf = ocf - capex

        total_debt = partial_total(
            g(balance, key) for key in ("short_term_debt", "current_portion_long_term_debt", "long_term_debt")
        )
        cash = g(balance, "cash_and_cash_equivalents")
        if not cash.present:
            cash = g(balance, "cash_and_short_term_investments")
        equity = g(balance, "total_shareholder_equity")

        shares = Amount.of(quote.shares_outstanding if quote else None)
        if not shares.present:
            shares = g(balance, "shares_outstanding")

        summary = FinancialsSummary(
            revenue=revenue.to_optional(),
            net_income=net_income.to_optional(),
            operating_cashflow=ocf.to_optional(),
            capital_expenditures=capex.to_optional(),
            free_cashflow=fcf.to_optional(),
            total_debt=total_debt.to_optional(),
            total_cash=cash.to_optional(),
            shareholder_equity=equity.to_optional(),
            shares_outstanding=shares.to_optional(),
            source_period=_describe(income),
        )
        _apply_market_ratios(summary, quote)
        _apply_growth(summary, statements)
        return summary


# ----------------------------
# Internal helpers
# ----------------------------

def _describe(record: Optional[StatementRecord]) -> Optional[str]:
    if record is None:
        return None
    if record.derived and record.fiscal_quarter is None:
        return f"TTM to {record.date.isoformat()}"
    return record.label


def _apply_market_ratios(summary: FinancialsSummary, quote: Optional[Quote]) -> None:
    if quote is None or not quote.price or quote.price <= 0:
        return
    price = float(quote.price)
    shares = summary.shares_outstanding
    if shares and shares > 0:
        summary.market_cap = price * shares
    market_cap = summary.market_cap

    summary.pe_ratio = quote.pe_ratio
    if summary.pe_ratio is None and shares and summary.net_income and summary.net_income > 0:
        summary.pe_ratio = price / (summary.net_income / shares)
    if market_cap is not None and summary.revenue and summary.revenue > 0:
        summary.price_to_sales = market_cap / summary.revenue
    if market_cap is not None and summary.shareholder_equity and summary.shareholder_equity > 0:
        summary.price_to_book = market_cap / summary.shareholder_equity
    summary.peg_ratio = quote.peg_ratio


def _apply_growth(summary: FinancialsSummary, statements: FinancialStatements) -> None:
    income_df = _frame_from_records(statements.income.annual, keys=["revenue", "net_income"])
    cash_df = _frame_from_records(statements.cash_flow.annual, keys=["operating_cash_flow", "free_cash_flow"])

    summary.revenue_growth = _clean(_yoy(income_df, "revenue"))
    summary.earnings_growth = _clean(_cagr_or_yoy(income_df, "net_income"))
    summary.cashflow_growth = _clean(_cagr_or_yoy(cash_df, "operating_cash_flow"))
    summary.fcf_growth = _clean(_cagr_or_yoy(cash_df, "free_cash_flow"))
    logger.debug(
        "Growth: revenue=%s earnings=%s ocf=%s fcf=%s",
        summary.revenue_growth,
        summary.earnings_growth,
        summary.cashflow_growth,
        summary.fcf_growth,
    )


def _frame_from_records(records: Iterable[StatementRecord], keys: List[str]) -> pd.DataFrame:
    rows: List[Dict[str, object]] = []
    for record in records:
        row: Dict[str, object] = {k: record.get(k).or_else(float("nan")) for k in keys}
        row["period"] = pd.Timestamp(record.date)
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=["period", *keys])
    return pd.DataFrame(rows).sort_values("period").reset_index(drop=True)


def _yoy(df: pd.DataFrame, col: str) -> float:
    if df.empty or col not in df:
        return float("nan")
    series = df[col].dropna()
    if len(series) < 2:
        return float("nan")
    previous, latest = float(series.iloc[-2]), float(series.iloc[-1])
    if previous == 0:
        return float("nan")
    return (latest - previous) / abs(previous)


def _cagr_from_df(df: pd.DataFrame, col: str) -> float:
    if col not in df or df[col].dropna().empty or len(df) < 2:
        return float("nan")
    series = df[["period", col]].dropna().tail(CAGR_WINDOW_YEARS + 1)
    if len(series) < 2:
        return float("nan")
    start_val = float(series[col].iloc[0])
    end_val = float(series[col].iloc[-1])
    if start_val <= 0 or end_val <= 0:
        return float("nan")
    years = max(series["period"].iloc[-1].year - series["period"].iloc[0].year, 1)
    return (end_val / start_val) ** (1.0 / years) - 1.0


def _cagr_or_yoy(df: pd.DataFrame, col: str) -> float:
    value = _cagr_from_df(df, col)
    if np.isnan(value):
        value = _yoy(df, col)
    return value


def _clean(value: float) -> Optional[float]:
    if value is None or np.isnan(value) or np.isinf(value):
        return None
    return float(value)
