"""Domain models describing reconstructed financial statements."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from filing_valuation.domain.models.amount import Amount

INCOME = "income"
BALANCE = "balance"
CASH_FLOW = "cash_flow"
STATEMENT_TYPES = (INCOME, BALANCE, CASH_FLOW)
FLOW_STATEMENTS = frozenset({INCOME, CASH_FLOW})


@dataclass(frozen=True)
class StatementRecord:
    """A flat statement for one period; ``fiscal_quarter`` is ``None`` for annual/TTM.

    Records are immutable: ``values`` and ``spans`` are read-only mappings and
    changes go through ``with_values``/``with_flags``.
    """

    statement_type: str
    date: date
    fiscal_year: int
    fiscal_quarter: Optional[int] = None
    values: Mapping[str, Optional[float]] = field(default_factory=dict, hash=False)
    # Quarters covered by the fact each field was resolved from (None = instant/unknown).
    spans: Mapping[str, Optional[int]] = field(default_factory=dict, compare=False)
    form: Optional[str] = field(default=None, compare=False)
    derived: bool = field(default=False, compare=False)
    quality_flags: Tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "spans", MappingProxyType(dict(self.spans)))

    @property
    def is_annual(self) -> bool:
        return self.fiscal_quarter is None

    @property
    def key(self) -> Tuple[int, Optional[int]]:
        return (self.fiscal_year, self.fiscal_quarter)

    def get(self, name: str) -> Amount:
        return Amount.of(self.values.get(name))

    def completeness(self) -> int:
        """Number of non-null fields."""
        return sum(1 for value in self.values.values() if value is not None)

    def with_values(self, updates: Dict[str, Amount], **changes) -> "StatementRecord":
        values = dict(self.values)
        for name, amount in updates.items():
            values[name] = amount.to_optional()
        return replace(self, values=values, **changes)

    def with_flags(self, flags: Iterable[str]) -> "StatementRecord":
        merged = tuple(dict.fromkeys((*self.quality_flags, *flags)))
        return replace(self, quality_flags=merged)

    @property
    def label(self) -> str:
        if self.fiscal_quarter is None:
            return f"FY{self.fiscal_year}"
        return f"Q{self.fiscal_quarter} {self.fiscal_year}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "statement_type": self.statement_type,
            "date": self.date.isoformat(),
            "fiscal_year": self.fiscal_year,
            "fiscal_quarter": self.fiscal_quarter,
            "derived": self.derived,
            "quality_flags": list(self.quality_flags),
            **self.values,
        }


@dataclass
class StatementSet:
    """Reconstructed records of one statement type, newest first."""

    statement_type: str
    annual: List[StatementRecord] = field(default_factory=list)
    quarterly: List[StatementRecord] = field(default_factory=list)
    ttm: Optional[StatementRecord] = None
    quality_issues: List[str] = field(default_factory=list)

    @property
    def latest_annual(self) -> Optional[StatementRecord]:
        return self.annual[0] if self.annual else None

    @property
    def latest_quarter(self) -> Optional[StatementRecord]:
        return self.quarterly[0] if self.quarterly else None

    def is_empty(self) -> bool:
        return not self.annual and not self.quarterly

    def to_dict(self) -> Dict[str, object]:
        return {
            "annual": [record.to_dict() for record in self.annual],
            "quarterly": [record.to_dict() for record in self.quarterly],
            "ttm": self.ttm.to_dict() if self.ttm is not None else None,
            "quality_issues": list(self.quality_issues),
        }


@dataclass
class FinancialStatements:
    """Container aggregating the three reconstructed statements."""

    symbol: str
    income: StatementSet = field(default_factory=lambda: StatementSet(INCOME))
    balance: StatementSet = field(default_factory=lambda: StatementSet(BALANCE))
    cash_flow: StatementSet = field(default_factory=lambda: StatementSet(CASH_FLOW))

    def get(self, statement_type: str) -> StatementSet:
        if statement_type == INCOME:
            return self.income
        if statement_type == BALANCE:
            return self.balance
        if statement_type == CASH_FLOW:
            return self.cash_flow
        raise ValueError(f"Unknown statement type: {statement_type}")

    def is_empty(self) -> bool:
        return all(self.get(kind).is_empty() for kind in STATEMENT_TYPES)

    def to_dict(self) -> Dict[str, object]:
        return {"symbol": self.symbol, **{kind: self.get(kind).to_dict() for kind in STATEMENT_TYPES}}
