"""Reported facts as supplied by the fact store."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

# Approximate day windows for single-quarter and full-year durations.
QUARTER_SPAN_DAYS = (80, 100)
ANNUAL_SPAN_DAYS = (350, 380)
DAYS_PER_QUARTER = 91.3

ANNUAL_FORMS = frozenset({"10-K", "10-K/A", "20-F", "20-F/A", "40-F", "40-F/A"})
QUARTERLY_FORMS = frozenset({"10-Q", "10-Q/A"})
QUARTER_LABELS = {"Q1": 1, "Q2": 2, "Q3": 3, "Q4": 4}


@dataclass(frozen=True)
class FactEntry:
    """One reported value of a concept for a single period."""

    period_end: date
    value: float
    fiscal_year: Optional[int] = None
    fiscal_period: Optional[str] = None
    form: Optional[str] = None
    period_start: Optional[date] = None
    filed: Optional[date] = None
    frame: Optional[str] = None

    @property
    def is_instant(self) -> bool:
        return self.period_start is None

    @property
    def span_days(self) -> Optional[int]:
        if self.period_start is None:
            return None
        return (self.period_end - self.period_start).days

    @property
    def span_quarters(self) -> Optional[int]:
        """Number of quarters covered by a duration fact, ``None`` for instants."""
        days = self.span_days
        if days is None:
            return None
        return max(1, int(round(days / DAYS_PER_QUARTER)))

    @property
    def is_quarter_span(self) -> bool:
        days = self.span_days
        return days is not None and QUARTER_SPAN_DAYS[0] <= days <= QUARTER_SPAN_DAYS[1]

    @property
    def is_annual_span(self) -> bool:
        days = self.span_days
        return days is not None and ANNUAL_SPAN_DAYS[0] <= days <= ANNUAL_SPAN_DAYS[1]

    @property
    def is_annual_filing(self) -> bool:
        return (self.form or "") in ANNUAL_FORMS

    @property
    def is_quarterly_filing(self) -> bool:
        return (self.form or "") in QUARTERLY_FORMS

    @property
    def quarter_label(self) -> Optional[int]:
        return QUARTER_LABELS.get((self.fiscal_period or "").upper())

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Optional["FactEntry"]:
        """Parse one companyfacts entry; returns ``None`` when end or value is unusable."""
        end = _parse_date(payload.get("end"))
        raw_value = payload.get("val")
        if end is None or raw_value is None or isinstance(raw_value, bool):
            return None
        try:
            value = float(raw_value)
        except (TypeError, ValueError):
            return None
        fiscal_year = payload.get("fy")
        return cls(
            period_end=end,
            value=value,
            fiscal_year=int(fiscal_year) if isinstance(fiscal_year, (int, float)) else None,
            fiscal_period=payload.get("fp"),
            form=payload.get("form"),
            period_start=_parse_date(payload.get("start")),
            filed=_parse_date(payload.get("filed")),
            frame=payload.get("frame"),
        )


# concept -> unit -> entries
FactMap = Dict[str, Dict[str, List[FactEntry]]]


def parse_fact_map(payload: Mapping[str, Any]) -> FactMap:
    """Turn a companyfacts document (or a flat concept map) into a ``FactMap``.

    Accepts ``{"facts": {taxonomy: {concept: {"units": ...}}}}``, a bare
    ``{taxonomy: {concept: ...}}`` mapping, or ``{concept: {"units": ...}}``.
    When several taxonomies define the same concept, the first one wins.
    """
    root = payload.get("facts", payload)
    fact_map: FactMap = {}
    if not isinstance(root, Mapping):
        return fact_map
    if _looks_like_concepts(root):
        _merge_concepts(fact_map, root)
        return fact_map
    for taxonomy in root.values():
        if isinstance(taxonomy, Mapping):
            _merge_concepts(fact_map, taxonomy)
    return fact_map


def entries_for(fact_map: FactMap, concept: str, unit: str) -> List[FactEntry]:
    return fact_map.get(concept, {}).get(unit, [])


def calendar_frame(period_end: date, quarter: Optional[int], instant: bool) -> str:
    """SEC frame label for a period, e.g. ``CY2024Q2`` or ``CY2024Q4I``."""
    label = f"CY{period_end.year}"
    if quarter is not None:
        label += f"Q{quarter}"
    elif instant:
        label += "Q4"
    return label + ("I" if instant else "")


# ----------------------------
# Internal helpers
# ----------------------------

def _looks_like_concepts(node: Mapping[str, Any]) -> bool:
    return any(isinstance(value, Mapping) and "units" in value for value in node.values())


def _merge_concepts(fact_map: FactMap, concepts: Mapping[str, Any]) -> None:
    for concept, body in concepts.items():
        if concept in fact_map or not isinstance(body, Mapping):
            continue
        units = body.get("units")
        if not isinstance(units, Mapping):
            continue
        fact_map[concept] = {unit: _parse_entries(rows) for unit, rows in units.items()}


def _parse_entries(rows: Iterable[Any]) -> List[FactEntry]:
    entries: List[FactEntry] = []
    for row in rows or []:
        if not isinstance(row, Mapping):
            continue
        entry = FactEntry.from_payload(row)
        if entry is not None:
            entries.append(entry)
    return entries


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None
