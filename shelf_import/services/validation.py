from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from ..models.request import ImportMode
from .column_mapping import fields_for_mode
from .normalizers import PRICE_CLEANUP_PATTERN, STRAIN_TYPE_ALIASES, TYPE_NORMALIZE_PATTERN
from .pipeline import HEADER_ROW_OFFSET

"""Pre-import validation of a mapping against a sample of rows.

Validation is advisory: the pipeline itself never fails on these values (it
falls back to None / 0.0 / Hybrid). The CLI refuses to start a run while any
message is reported.
"""

__all__ = [
    "validate_rows",
    "DEFAULT_SAMPLE_SIZE",
]

DEFAULT_SAMPLE_SIZE = 10

# Leading-number check: accepts "24.5%", "12 mg", ".5"; rejects "n/a".
_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)")


def _starts_with_number(value: str) -> bool:
    return _LEADING_NUMBER.match(value) is not None


def validate_rows(
    rows: Sequence[Mapping[str, str]],
    column_mapping: Mapping[str, str],
    mode: ImportMode,
    *,
    sample: int = DEFAULT_SAMPLE_SIZE,
) -> list[str]:
    """Check the mapping and the first ``sample`` rows.

    Returns:
        Human-readable messages, empty when the data looks importable. Row
        messages are prefixed ``Row N:`` with N the file line (data index + 2).
    """
    errors: list[str] = []
    mapped = set(column_mapping.values())
    for field in fields_for_mode(mode):
        if field.required and field.key not in mapped:
            errors.append(f'Required field "{field.label}" is not mapped')

    for index, row in enumerate(rows[:sample]):
        line = index + HEADER_ROW_OFFSET
        for csv_column, field in column_mapping.items():
            value = row.get(csv_column) or ""
            if field in ("thc", "terpenes"):
                if value and value != "-" and not _starts_with_number(value):
                    errors.append(f'Row {line}: Invalid number format in {field}: "{value}"')
            elif field == "price":
                if value and not _starts_with_number(PRICE_CLEANUP_PATTERN.sub("", value)):
                    errors.append(f'Row {line}: Invalid price format: "{value}"')
            elif field == "type":
                key = TYPE_NORMALIZE_PATTERN.sub("", value.upper())
                if value and key not in STRAIN_TYPE_ALIASES:
                    errors.append(f'Row {line}: Unknown strain type: "{value}"')
    return errors
