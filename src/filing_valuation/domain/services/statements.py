"""Statement Builder: fact map -> raw statement records.

One record is produced per distinct period found in the template's anchor
concepts. Each field is resolved through its concept fallback chain for the
exact period end date; a field no concept can satisfy stays ``None``.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from filing_valuation.domain.models.amount import Amount
from filing_valuation.domain.models.facts import FactEntry, FactMap, calendar_frame
from filing_valuation.domain.models.financials import StatementRecord
from filing_valuation.domain.services.concepts import FLOW, POSITION, USD, FieldSpec, StatementTemplate

logger = logging.getLogger(__name__)

# Fields read at the instant before the period starts instead of at its end.
OPENING_POSITION_FIELDS = frozenset({"begin_cash"})

# 52/53-week years can close in the first days of January; such a year belongs
# to the calendar year before.
YEAR_END_SPILLOVER_DAYS = 7

_FRAME_YEAR = re.compile(r"^CY(\d{4})")


@dataclass(frozen=True)
class PeriodContext:
    """The period a record describes, used to pick matching facts."""

    end: date
    quarter: Optional[int] = None
    start: Optional[date] = None
    fiscal_year: Optional[int] = None

    @property
    def quarterly(self) -> bool:
        return self.quarter is not None

    @property
    def calendar_quarter(self) -> int:
        return math.ceil(self.end.month / 3)

    @property
    def year(self) -> int:
        if self.fiscal_year is not None:
            return self.fiscal_year
        if not self.quarterly and self.end.month == 1 and self.end.day <= YEAR_END_SPILLOVER_DAYS:
            return self.end.year - 1
        return self.end.year

    def duration_frame(self) -> str:
        if self.quarterly:
            return calendar_frame(self.end, self.calendar_quarter, instant=False)
        return f"CY{self.year}"

    def instant_frame(self, at: date) -> str:
        return calendar_frame(at, math.ceil(at.month / 3), instant=True)


class StatementBuilder:
    """Build raw annual and quarterly records for one statement template."""

    def __init__(self, fact_map: FactMap) -> None:
        self._facts = fact_map
        self._index: Dict[Tuple[str, str], Dict[date, List[FactEntry]]] = {}

    def build(self, template: StatementTemplate) -> Tuple[List[StatementRecord], List[StatementRecord]]:
        annual = [self._build_record(template, ctx, form) for ctx, form in self._anchor_periods(template, False)]
        quarterly = [self._build_record(template, ctx, form) for ctx, form in self._anchor_periods(template, True)]
        logger.debug(
            "Built %d annual and %d quarterly raw %s records",
            len(annual),
            len(quarterly),
            template.statement_type,
        )
        return annual, quarterly

    def resolve(self, spec: FieldSpec, ctx: PeriodContext) -> Tuple[Optional[float], Optional[int]]:
        """Return ``(value, span_in_quarters)`` for the first concept with a matching fact."""
        at = ctx.end
        if spec.name in OPENING_POSITION_FIELDS:
            if ctx.start is None:
                return None, None
            at = ctx.start - timedelta(days=1)
        for concept in spec.concepts:
            candidates = self._entries_at(concept, spec.unit, at)
            if not candidates:
                continue
            if spec.kind == POSITION:
                picked = _pick_position(candidates, ctx.instant_frame(at))
            else:
                picked = _pick_duration(candidates, ctx)
            if picked is not None:
                return picked.value, picked.span_quarters
        return None, None

    # ----------------------------
    # Internal helpers
    # ----------------------------

    def _anchor_periods(
        self, template: StatementTemplate, quarterly: bool
    ) -> List[Tuple[PeriodContext, Optional[str]]]:
        seen: Dict[Tuple[date, Optional[int]], Tuple[PeriodContext, Optional[str]]] = {}
        frame_years: Dict[Tuple[date, Optional[int]], int] = {}
        for concept in template.anchors:
            for entry in self._facts.get(concept, {}).get(USD, []):
                if quarterly:
                    if not entry.is_quarterly_filing or entry.quarter_label is None:
                        continue
                    quarter: Optional[int] = entry.quarter_label
                else:
                    if not entry.is_annual_filing or not _is_annual_anchor(entry, template):
                        continue
                    quarter = None
                key = (entry.period_end, quarter)
                if quarter is None and key not in frame_years:
                    framed = _frame_year(entry.frame)
                    if framed is not None:
                        frame_years[key] = framed
                current = seen.get(key)
                # The shortest-span anchor gives the most precise period start.
                if current is None or _shorter(entry.period_start, current[0].start):
                    seen[key] = (PeriodContext(entry.period_end, quarter, entry.period_start), entry.form)
        periods = []
        for key in sorted(seen, key=lambda k: (k[0], k[1] or 0)):
            ctx, form = seen[key]
            if key in frame_years:
                ctx = replace(ctx, fiscal_year=frame_years[key])
            periods.append((ctx, form))
        return periods

    def _build_record(
        self, template: StatementTemplate, ctx: PeriodContext, form: Optional[str]
    ) -> StatementRecord:
        values: Dict[str, Optional[float]] = {}
        spans: Dict[str, Optional[int]] = {}
        for spec in template.fields:
            value, span = self.resolve(spec, ctx)
            values[spec.name] = value
            if spec.kind == FLOW:
                spans[spec.name] = span
        amounts = {name: Amount.of(value) for name, value in values.items()}
        for name, amount in template.apply_derived(amounts).items():
            values[name] = amount.to_optional()
        return StatementRecord(
            statement_type=template.statement_type,
            date=ctx.end,
            fiscal_year=ctx.year,
            fiscal_quarter=ctx.quarter,
            values=values,
            spans=spans,
            form=form,
        )

    def _entries_at(self, concept: str, unit: str, at: date) -> List[FactEntry]:
        key = (concept, unit)
        by_end = self._index.get(key)
        if by_end is None:
            by_end = {}
            for entry in self._facts.get(concept, {}).get(unit, []):
                by_end.setdefault(entry.period_end, []).append(entry)
            self._index[key] = by_end
        return by_end.get(at, [])


def _is_annual_anchor(entry: FactEntry, template: StatementTemplate) -> bool:
    if template.instant:
        return entry.is_instant
    if entry.span_days is None:
        return (entry.fiscal_period or "").upper() == "FY"
    return entry.is_annual_span


def _frame_year(frame: Optional[str]) -> Optional[int]:
    match = _FRAME_YEAR.match(frame or "")
    return int(match.group(1)) if match else None


def _shorter(candidate: Optional[date], current: Optional[date]) -> bool:
    if candidate is None:
        return False
    return current is None or candidate > current


def _latest_filed(entries: Iterable[FactEntry]) -> Optional[FactEntry]:
    best: Optional[FactEntry] = None
    for entry in entries:
        if best is None or (entry.filed or date.min) > (best.filed or date.min):
            best = entry
    return best


def _pick_position(candidates: List[FactEntry], frame: str) -> Optional[FactEntry]:
    framed = [e for e in candidates if e.frame == frame]
    if framed:
        return _latest_filed(framed)
    instants = [e for e in candidates if e.is_instant]
    return _latest_filed(instants or candidates)


def _pick_duration(candidates: List[FactEntry], ctx: PeriodContext) -> Optional[FactEntry]:
    frame = ctx.duration_frame()
    framed = [e for e in candidates if e.frame == frame]
    if framed:
        return _latest_filed(framed)
    if ctx.quarterly:
        single = [e for e in candidates if e.is_quarter_span]
        if single:
            return _latest_filed(single)
        # Cumulative facts: the shortest known span, then facts without a start.
        known = [e for e in candidates if e.span_days is not None and not e.is_annual_span]
        if known:
            shortest = min(e.span_days for e in known)  # type: ignore[type-var]
            return _latest_filed(e for e in known if e.span_days == shortest)
        return _latest_filed(e for e in candidates if e.span_days is None)
    annual = [e for e in candidates if e.is_annual_span]
    if annual:
        return _latest_filed(annual)
    return _latest_filed(e for e in candidates if e.span_days is None)
