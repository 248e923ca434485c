"""Application-wide configuration defaults and helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from filing_valuation.domain.models.valuation import ValuationConfig

# Relative data and output paths resolve against the working directory.
BASE_DIR = Path.cwd()


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse truthy environment values like '1' or 'true'."""
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str]) -> Optional[int]:
    """Safely parse an integer env var, returning None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _to_float(value: Optional[str]) -> Optional[float]:
    """Safely parse a float env var, returning None on failure."""
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


@dataclass
class Config:
    """Runtime configuration loaded from environment variables."""

    debug: bool = False
    facts_dir: Path = BASE_DIR / "data" / "facts"
    quotes_file: Path = BASE_DIR / "data" / "quotes.json"
    output_dir: Path = BASE_DIR / "output"
    annual_limit: int = 10
    quarterly_limit: int = 20
    valuation: ValuationConfig = field(default_factory=ValuationConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration instance using environment overrides."""
        defaults = ValuationConfig()
        rates = {
            "discount_rate": _to_float(os.getenv("FILING_DISCOUNT_RATE")),
            "terminal_growth": _to_float(os.getenv("FILING_TERMINAL_GROWTH")),
            "long_run_growth": _to_float(os.getenv("FILING_LONG_RUN_GROWTH")),
            "risk_free_rate": _to_float(os.getenv("FILING_RISK_FREE_RATE")),
            "market_return": _to_float(os.getenv("FILING_MARKET_RETURN")),
        }
        valuation = ValuationConfig(
            **{key: value if value is not None else getattr(defaults, key) for key, value in rates.items()}
        )
        return cls(
            debug=_to_bool(os.getenv("DEBUG")),
            facts_dir=Path(os.getenv("FILING_FACTS_DIR", BASE_DIR / "data" / "facts")),
            quotes_file=Path(os.getenv("FILING_QUOTES_FILE", BASE_DIR / "data" / "quotes.json")),
            output_dir=Path(os.getenv("FILING_OUTPUT_DIR", BASE_DIR / "output")),
            annual_limit=_to_int(os.getenv("FILING_ANNUAL_LIMIT")) or 10,
            quarterly_limit=_to_int(os.getenv("FILING_QUARTERLY_LIMIT")) or 20,
            valuation=valuation,
        )

    def ensure_directories(self) -> None:
        """Create directories needed for runtime artifacts."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
