"""Convenience re-exports for workflow nodes."""
from __future__ import annotations

from . import facts_load, quote_load, reconstruct, summarize, valuation

__all__ = [
    "facts_load",
    "quote_load",
    "reconstruct",
    "summarize",
    "valuation",
]
