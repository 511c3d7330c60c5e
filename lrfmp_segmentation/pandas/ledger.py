"""Reading the transaction ledger from CSV with pandas."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

from lrfmp_segmentation.foundation.ledger import LedgerParser, LedgerParseResult

MAX_INPUT_BYTES = 100 * 1024 * 1024  # 100 MiB cap to avoid accidental OOM


def read_ledger_csv(path: Path, max_bytes: int = MAX_INPUT_BYTES) -> list[dict[str, Any]]:
    """Read a ledger CSV into a list of raw row dictionaries.

    All columns are read as text and empty cells stay empty strings, so the
    parser sees exactly what the file contains.

    Raises
    ------
    ValueError
        If the file exceeds ``max_bytes``
    """
    resolved = Path(path).resolve()
    size = resolved.stat().st_size
    if size > max_bytes:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {max_bytes} bytes"
        )
    frame = pd.read_csv(resolved, dtype=str, keep_default_na=False)
    frame.columns = [str(col).strip() for col in frame.columns]
    return frame.to_dict("records")


def parse_ledger_csv(path: Path, parser: LedgerParser | None = None) -> LedgerParseResult:
    """Read and parse a ledger CSV in one step."""
    parser = parser or LedgerParser()
    return parser.parse(read_ledger_csv(path))
