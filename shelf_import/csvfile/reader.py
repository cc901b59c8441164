from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

"""CSV reader for menu exports.

- Delimiter detected from the first non-blank line (``,`` ``;`` tab ``|``; the
  candidate producing the most columns wins, ties keep the earlier candidate)
- First line is the header; quotes are stripped from header cells
- Empty header cells get positional names: ``Category`` for the first column,
  ``Column{n}`` (1-based) otherwise
- Every cell is read as a string; missing cells become ``""`` and fully blank
  lines are dropped
"""

__all__ = [
    "CsvReadError",
    "CANDIDATE_DELIMITERS",
    "detect_delimiter",
    "read_csv_rows",
]

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")


class CsvReadError(Exception):
    """Raised when a CSV file cannot be read or has no data rows."""


def detect_delimiter(first_line: str) -> str:
    best = CANDIDATE_DELIMITERS[0]
    max_columns = 0
    for delim in CANDIDATE_DELIMITERS:
        columns = len(first_line.split(delim))
        if columns > max_columns:
            max_columns = columns
            best = delim
    return best


def _header_name(raw: str, index: int) -> str:
    name = raw.strip().strip('"').strip()
    if name:
        return name
    return "Category" if index == 0 else f"Column{index + 1}"


def _first_line(path: Path) -> str:
    with path.open("r", encoding="utf-8-sig") as f:
        for line in f:
            if line.strip():
                return line.rstrip("\r\n")
    return ""


def read_csv_rows(path: Path, *, delimiter: str | None = None) -> tuple[list[str], list[dict[str, str]]]:
    """Read ``path`` into ``(headers, rows)``.

    Raises:
        CsvReadError: file missing/unreadable, or no header + data rows
    """
    if not path.exists():
        raise CsvReadError(f"csv file not found: {path}")

    try:
        first = _first_line(path)
    except (OSError, UnicodeDecodeError) as e:
        raise CsvReadError(f"cannot read {path}: {e}") from e
    if not first:
        raise CsvReadError(f"csv file is empty: {path}")

    sep = delimiter or detect_delimiter(first)
    try:
        df = pd.read_csv(
            path,
            sep=sep,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
            on_bad_lines="warn",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise CsvReadError(f"cannot parse {path}: {e}") from e

    df = df.fillna("")
    if len(df.index) < 2:
        raise CsvReadError(f"csv file has no data rows: {path}")

    headers = [_header_name(str(v), i) for i, v in enumerate(df.iloc[0].tolist())]
    body = df.iloc[1:].apply(lambda col: col.astype(str).str.strip())
    body.columns = headers
    blank = (body == "").all(axis=1)
    if blank.any():
        logger.debug("dropping %d blank line(s) from %s", int(blank.sum()), path)
    body = body[~blank]

    rows = [dict(zip(headers, values)) for values in body.itertuples(index=False, name=None)]
    logger.info("read %s: %d column(s), %d row(s), delimiter=%r", path.name, len(headers), len(rows), sep)
    return headers, rows
