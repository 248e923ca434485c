"""Local JSON sources for company facts and market quotes."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from filing_valuation.domain.models.facts import FactMap, parse_fact_map
from filing_valuation.domain.models.valuation import Quote

logger = logging.getLogger(__name__)


class FactStoreError(RuntimeError):
    """Raised when a company's facts cannot be read."""


class QuoteStoreError(RuntimeError):
    """Raised when a quote cannot be read."""


class JsonFactStore:
    """Read companyfacts documents stored as ``<root>/<SYMBOL>.json``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def path_for(self, symbol: str) -> Path:
        return self._root / f"{symbol.upper()}.json"

    def fetch(self, symbol: str) -> FactMap:
        path = self.path_for(symbol)
        payload = _read_json(path, FactStoreError)
        if not isinstance(payload, dict):
            raise FactStoreError(f"{path} does not contain a JSON object")
        fact_map = parse_fact_map(payload)
        logger.debug("Loaded %d concepts for %s from %s", len(fact_map), symbol, path)
        return fact_map


class JsonQuoteStore:
    """Read quotes from a JSON object keyed by symbol."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def fetch(self, symbol: str) -> Quote:
        payload = _read_json(self._path, QuoteStoreError)
        if not isinstance(payload, dict):
            raise QuoteStoreError(f"{self._path} does not contain a JSON object")
        row = payload.get(symbol.upper()) or payload.get(symbol)
        if not isinstance(row, dict):
            raise QuoteStoreError(f"No quote for {symbol} in {self._path}")
        price = _to_float(row.get("price"))
        if price is None or price <= 0:
            raise QuoteStoreError(f"Quote for {symbol} has no usable price")
        return Quote(
            symbol=symbol.upper(),
            price=price,
            shares_outstanding=_to_float(row.get("shares_outstanding")),
            pe_ratio=_to_float(row.get("pe_ratio")),
            peg_ratio=_to_float(row.get("peg_ratio")),
            eps=_to_float(row.get("eps")),
            beta=_to_float(row.get("beta")),
        )


def _read_json(path: Path, error: type) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise error(f"Cannot read {path}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise error(f"Invalid JSON in {path}: {exc}") from exc


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def quote_from_options(symbol: str, **fields: Optional[float]) -> Optional[Quote]:
    """Build a quote from CLI options; ``None`` when no price was given."""
    values: Dict[str, Optional[float]] = {key: _to_float(value) for key, value in fields.items()}
    price = values.pop("price", None)
    if price is None:
        return None
    return Quote(symbol=symbol.upper(), price=price, **values)
