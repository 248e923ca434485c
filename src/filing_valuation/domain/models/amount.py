"""Maybe-numeric value used by statement arithmetic.

An ``Amount`` is either present (wraps a float) or absent. Arithmetic between
amounts propagates absence, so a missing operand never turns into zero.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class Amount:
    """A numeric value that may be absent."""

    value: Optional[float] = None

    @classmethod
    def of(cls, value: object) -> "Amount":
        """Wrap a raw value; ``None``, NaN and non-numeric inputs become absent."""
        if value is None or isinstance(value, bool):
            return MISSING
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return MISSING
        if math.isnan(number) or math.isinf(number):
            return MISSING
        return cls(number)

    @property
    def present(self) -> bool:
        return self.value is not None

    def __add__(self, other: "Amount") -> "Amount":
        if self.value is None or other.value is None:
            return MISSING
        return Amount(self.value + other.value)

    def __sub__(self, other: "Amount") -> "Amount":
        if self.value is None or other.value is None:
            return MISSING
        return Amount(self.value - other.value)

    def __neg__(self) -> "Amount":
        if self.value is None:
            return MISSING
        return Amount(-self.value)

    def __abs__(self) -> "Amount":
        if self.value is None:
            return MISSING
        return Amount(abs(self.value))

    def scale(self, factor: float) -> "Amount":
        if self.value is None:
            return MISSING
        return Amount(self.value * factor)

    def or_else(self, default: float) -> float:
        return self.value if self.value is not None else default

    def to_optional(self) -> Optional[float]:
        return self.value


MISSING = Amount()


def total(amounts: Iterable[Amount]) -> Amount:
    """Sum amounts; absent if any operand is absent or nothing was given."""
    result: Optional[Amount] = None
    for amount in amounts:
        result = amount if result is None else result + amount
        if not result.present:
            return MISSING
    return result if result is not None else MISSING


def partial_total(amounts: Iterable[Amount]) -> Amount:
    """Sum the present amounts; absent only when none is present."""
    present = [amount.value for amount in amounts if amount.value is not None]
    if not present:
        return MISSING
    return Amount(float(sum(present)))
