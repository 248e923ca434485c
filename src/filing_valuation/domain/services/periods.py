"""Period-level transformations applied after statement building.

This module implements:
- PeriodReconciler: duplicate collapse and fiscal-quarter sanity filter
- Quarterizer: year-to-date quarterly values -> discrete quarters
- Q4Deriver: residual fourth quarter (annual minus Q1..Q3), balance-sheet copy
- check_quarter_sums: Q1..Q4 versus annual consistency report
- TTMAggregator: trailing twelve months from the four latest quarters

Missing values stay missing: every subtraction and sum goes through ``Amount``.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from filing_valuation.domain.models.amount import MISSING, Amount, total
from filing_valuation.domain.models.financials import StatementRecord
from filing_valuation.domain.services.concepts import StatementTemplate

logger = logging.getLogger(__name__)

NEGATIVE_RESIDUAL = "negative_residual"
NON_CONSECUTIVE = "non_consecutive_quarters"


def calendar_quarter(record: StatementRecord) -> int:
    return math.ceil(record.date.month / 3)


class PeriodReconciler:
    """Collapse same-period duplicates and drop mislabeled quarters.

    The surviving record for a key is the one with the most non-null fields;
    ties are broken on content, so the outcome does not depend on input order.
    """

    def reconcile(self, records: Iterable[StatementRecord]) -> List[StatementRecord]:
        best: Dict[Tuple[int, Optional[int]], StatementRecord] = {}
        dropped = 0
        for record in records:
            if record.fiscal_quarter is not None and record.fiscal_quarter != calendar_quarter(record):
                dropped += 1
                continue
            current = best.get(record.key)
            if current is None or _rank(record) > _rank(current):
                best[record.key] = record
        if dropped:
            logger.debug("Discarded %d quarterly records with mismatched fiscal quarter", dropped)
        return sorted(best.values(), key=lambda r: (r.date, r.fiscal_quarter or 0), reverse=True)


class Quarterizer:
    """Convert cumulative quarterly flow figures into single-quarter figures."""

    def __init__(self, template: StatementTemplate) -> None:
        self._template = template
        derived = set(template.derived)
        self._fields = [name for name in template.additive_fields if name not in derived]

    def discretize(self, quarterly: Iterable[StatementRecord]) -> List[StatementRecord]:
        records = list(quarterly)
        if self._template.instant:
            return _newest_first(records)
        by_year: Dict[int, List[StatementRecord]] = {}
        for record in records:
            by_year.setdefault(record.fiscal_year, []).append(record)

        converted: List[StatementRecord] = []
        for year in sorted(by_year):
            running: Dict[str, Amount] = {}
            previous: Optional[StatementRecord] = None
            for record in sorted(by_year[year], key=lambda r: r.fiscal_quarter or 0):
                contiguous = previous is not None and previous.fiscal_quarter == (record.fiscal_quarter or 0) - 1
                converted_record, running = self._convert(record, previous if contiguous else None, running)
                converted.append(converted_record)
                previous = converted_record
        return _newest_first(converted)

    def _convert(
        self,
        record: StatementRecord,
        previous: Optional[StatementRecord],
        running: Dict[str, Amount],
    ) -> Tuple[StatementRecord, Dict[str, Amount]]:
        if record.fiscal_quarter == 1:
            return record, {name: record.get(name) for name in self._fields}

        updates: Dict[str, Amount] = {}
        next_running: Dict[str, Amount] = {}
        for name in self._fields:
            current = record.get(name)
            prior = running.get(name, MISSING) if previous is not None else MISSING
            if record.spans.get(name) == 1:
                updates[name] = current
                next_running[name] = prior + current
            else:
                updates[name] = current - prior
                next_running[name] = current

        if previous is not None and "begin_cash" in record.values:
            updates["begin_cash"] = previous.get("end_cash")
        updates.update(self._template.apply_derived({**_amounts(record), **updates}))
        spans = {**record.spans, **{name: 1 for name in self._fields}}
        return record.with_values(updates, spans=spans), next_running


class Q4Deriver:
    """Emit the fourth quarter for years whose annual record has no reported Q4."""

    def __init__(self, template: StatementTemplate) -> None:
        self._template = template

    def derive(self, annual: Iterable[StatementRecord], quarterly: Iterable[StatementRecord]) -> List[StatementRecord]:
        result = list(quarterly)
        by_key = {record.key: record for record in result}
        for annual_record in annual:
            year = annual_record.fiscal_year
            if (year, 4) in by_key:
                continue
            if self._template.instant:
                q4 = replace(annual_record, fiscal_quarter=4, derived=True)
            else:
                quarters = [by_key.get((year, n)) for n in (1, 2, 3)]
                if any(q is None for q in quarters):
                    logger.debug("Skipping Q4 %s for %d: quarters 1-3 incomplete", self._template.statement_type, year)
                    continue
                q4 = self._residual(annual_record, quarters)  # type: ignore[arg-type]
            by_key[q4.key] = q4
            result.append(q4)
        return _newest_first(result)

    def _residual(self, annual: StatementRecord, quarters: List[StatementRecord]) -> StatementRecord:
        values: Dict[str, Amount] = {}
        for name in self._template.additive_fields:
            values[name] = annual.get(name) - total(q.get(name) for q in quarters)
        # EPS is not additive across quarters; a quarter of the annual figure is used instead.
        for name in self._template.per_share_fields:
            values[name] = annual.get(name).scale(0.25)
        if "end_cash" in annual.values:
            values["begin_cash"] = quarters[-1].get("end_cash")
            values["end_cash"] = annual.get("end_cash")

        flags = []
        for name in self._template.non_negative_fields:
            amount = values.get(name, MISSING)
            if amount.present and amount.or_else(0.0) < 0:
                flags.append(f"{NEGATIVE_RESIDUAL}:{name}")
                logger.warning(
                    "Negative derived Q4 %s %s for %d (%.0f); Q1-Q3 may still be cumulative",
                    self._template.statement_type,
                    name,
                    annual.fiscal_year,
                    amount.or_else(0.0),
                )

        record = StatementRecord(
            statement_type=annual.statement_type,
            date=annual.date,
            fiscal_year=annual.fiscal_year,
            fiscal_quarter=4,
            values={name: None for name in annual.values},
            spans={name: 1 for name in self._template.additive_fields},
            form=annual.form,
            derived=True,
        )
        return record.with_values(values).with_flags(flags)


def check_quarter_sums(
    template: StatementTemplate,
    annual: Iterable[StatementRecord],
    quarterly: Iterable[StatementRecord],
    tolerance: float = 0.01,
) -> List[str]:
    """Report fields whose four quarters differ from the annual total by more than ``tolerance``."""
    if template.instant:
        return []
    by_key = {record.key: record for record in quarterly}
    issues: List[str] = []
    for annual_record in annual:
        quarters = [by_key.get((annual_record.fiscal_year, n)) for n in (1, 2, 3, 4)]
        if any(q is None for q in quarters):
            continue
        for name in template.additive_fields:
            expected = annual_record.get(name)
            summed = total(q.get(name) for q in quarters)  # type: ignore[union-attr]
            if not expected.present or not summed.present:
                continue
            target = expected.or_else(0.0)
            gap = abs(summed.or_else(0.0) - target)
            if gap > tolerance * max(abs(target), 1.0):
                issues.append(
                    f"{annual_record.label} {name}: quarters sum {summed.or_else(0.0):,.0f} vs annual {target:,.0f}"
                )
    for issue in issues:
        logger.warning("Quarter sum check (%s): %s", template.statement_type, issue)
    return issues


class TTMAggregator:
    """Sum the four most recent discrete quarters of a flow statement."""

    def __init__(self, template: StatementTemplate) -> None:
        self._template = template

    def aggregate(self, quarterly: Iterable[StatementRecord]) -> Optional[StatementRecord]:
        if self._template.instant:
            return None
        latest = _newest_first(quarterly)[:4]
        if len(latest) < 4:
            return None
        newest, oldest = latest[0], latest[-1]

        values: Dict[str, Amount] = {}
        for name in (*self._template.additive_fields, *self._template.per_share_fields):
            values[name] = total(q.get(name) for q in latest)
        if "end_cash" in newest.values:
            values["end_cash"] = newest.get("end_cash")
            values["begin_cash"] = oldest.get("begin_cash")

        flags = []
        ordinals = [q.fiscal_year * 4 + (q.fiscal_quarter or 0) for q in latest]
        if any(a - b != 1 for a, b in zip(ordinals, ordinals[1:])):
            flags.append(NON_CONSECUTIVE)
            logger.warning(
                "TTM %s built from non-consecutive quarters: %s",
                self._template.statement_type,
                ", ".join(q.label for q in latest),
            )

        record = StatementRecord(
            statement_type=newest.statement_type,
            date=newest.date,
            fiscal_year=newest.fiscal_year,
            fiscal_quarter=None,
            values={name: None for name in newest.values},
            derived=True,
        )
        return record.with_values(values).with_flags(flags)


# ----------------------------
# Internal helpers
# ----------------------------

def _rank(record: StatementRecord) -> Tuple[int, object, Tuple[Tuple[str, float], ...], str]:
    fingerprint = tuple(sorted((k, v) for k, v in record.values.items() if v is not None))
    return (record.completeness(), record.date, fingerprint, record.form or "")


def _newest_first(records: Iterable[StatementRecord]) -> List[StatementRecord]:
    return sorted(records, key=lambda r: (r.date, r.fiscal_quarter or 0), reverse=True)


def _amounts(record: StatementRecord) -> Dict[str, Amount]:
    return {name: record.get(name) for name in record.values}

