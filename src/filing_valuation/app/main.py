"""Console entry point (``filing-valuation``) and ``python -m`` support."""
from __future__ import annotations

import sys
from typing import List, Optional

from filing_valuation.cli.commands import app

PROG_NAME = "filing-valuation"


def main(argv: Optional[List[str]] = None) -> None:
    """Run the CLI; ``argv`` defaults to the process arguments."""
    app(args=sys.argv[1:] if argv is None else argv, prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
