"""Rich-backed logging for the CLI, the reconstruction services and the workflow."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler

# Libraries whose DEBUG output drowns out statement-resolution details.
NOISY_LOGGERS = ("langgraph",)

_handler: Optional[RichHandler] = None


def configure_logging(
    debug: bool = False,
    *,
    level: Optional[int] = None,
    console: Optional[Console] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> RichHandler:
    """Install one ``RichHandler`` on the root logger and return it.

    Repeated calls only adjust the level, so the CLI callback can run per
    invocation. Passing the CLI console keeps log lines and tables on the same
    stream.
    """
    global _handler
    resolved_level = level or (logging.DEBUG if debug else logging.INFO)
    root = logging.getLogger()
    if _handler is None:
        _handler = RichHandler(
            console=console,
            rich_tracebacks=debug,
            show_path=debug,
            log_time_format="%H:%M:%S",
        )
        _handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(_handler)
    root.setLevel(resolved_level)
    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved_level, logging.INFO))
    return _handler
