"""Settings helpers to centralize configuration access."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Optional

from filing_valuation.settings.config import Config


def load_settings(
    debug_override: Optional[bool] = None,
    *,
    facts_dir: Optional[Path] = None,
    quotes_file: Optional[Path] = None,
    output_dir: Optional[Path] = None,
) -> Config:
    """Return ``Config.from_env()`` with command-line overrides applied on top.

    Only arguments that are not ``None`` replace the environment values.
    """
    config = Config.from_env()
    overrides = {
        "debug": debug_override,
        "facts_dir": Path(facts_dir) if facts_dir is not None else None,
        "quotes_file": Path(quotes_file) if quotes_file is not None else None,
        "output_dir": Path(output_dir) if output_dir is not None else None,
    }
    return replace(config, **{key: value for key, value in overrides.items() if value is not None})
