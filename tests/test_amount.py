from __future__ import annotations

import math

from filing_valuation.domain.models.amount import MISSING, Amount, partial_total, total


def test_of_treats_none_nan_and_text_as_missing():
    assert not Amount.of(None).present
    assert not Amount.of(float("nan")).present
    assert not Amount.of(math.inf).present
    assert not Amount.of("n/a").present
    assert not Amount.of(True).present
    assert Amount.of("12.5").value == 12.5
    assert Amount.of(0).present  # zero is a value, not an absence


def test_arithmetic_propagates_absence():
    assert (Amount(10.0) - Amount(4.0)).value == 6.0
    assert (Amount(10.0) + MISSING) is MISSING
    assert (MISSING - Amount(1.0)) is MISSING
    assert abs(Amount(-3.0)).value == 3.0
    assert (-MISSING) is MISSING
    assert Amount(8.0).scale(0.25).value == 2.0
    assert MISSING.or_else(0.0) == 0.0
    assert MISSING.to_optional() is None


def test_total_requires_every_operand():
    assert total([Amount(1.0), Amount(2.0), Amount(3.0)]).value == 6.0
    assert total([Amount(1.0), MISSING, Amount(3.0)]) is MISSING
    assert total([]) is MISSING


def test_partial_total_sums_present_parts():
    assert partial_total([Amount(10.0), MISSING, Amount(40.0)]).value == 50.0
    assert partial_total([MISSING, MISSING]) is MISSING
