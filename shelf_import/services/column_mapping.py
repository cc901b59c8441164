from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ..models.request import ImportMode

"""Column mapping: csvColumn -> field inversion, per-row lookups and mapping suggestions.

The caller supplies ``{csv_column: field}``. The pipeline inverts it once per
run into ``{field: csv_column}``; when two columns map to the same field the
later one wins.
"""

__all__ = [
    "MappingField",
    "BULK_FIELDS",
    "PREPACKAGED_FIELDS",
    "fields_for_mode",
    "required_fields",
    "invert_mapping",
    "lookup",
    "suggest_mapping",
    "detect_mode",
]

_SEPARATORS = re.compile(r"[\s_-]")


@dataclass(frozen=True)
class MappingField:
    key: str
    label: str
    required: bool
    aliases: tuple[str, ...]


BULK_FIELDS: tuple[MappingField, ...] = (
    MappingField("shelf", "Shelf/Category", True, ("category", "shelf", "tier", "section", "group")),
    MappingField("name", "Strain Name", True, ("strain name", "strain", "product", "flower", "name", "product name")),
    MappingField("grower", "Grower/Brand", False, ("brand", "grower", "grow/brand", "grower/brand", "company", "producer", "cultivator")),
    MappingField("thc", "THC %", False, ("thc", "thc%", "thc percent", "thc percentage", "thc %")),
    MappingField("type", "Strain Type", False, ("class", "type", "strain type", "classification")),
    MappingField("lastJar", "Last Jar", False, ("last jar", "lastjar", "final", "remaining", "last")),
    MappingField("soldOut", "Sold Out", False, ("sold out", "soldout", "out of stock", "status")),
    MappingField("originalShelf", "Original Shelf", False, ("original shelf", "original", "source shelf", "source")),
)

PREPACKAGED_FIELDS: tuple[MappingField, ...] = (
    MappingField("shelf", "Weight Category", True, ("category", "shelf", "weight", "size")),
    MappingField("name", "Product Name", True, ("product name", "strain", "name", "flower")),
    MappingField("brand", "Brand", False, ("brand", "grower", "company", "producer")),
    MappingField("thc", "THC %", False, ("thc", "thc%", "thc percent")),
    MappingField("terpenes", "Terpenes %", False, ("terpenes", "terp", "terp%", "terpene")),
    MappingField("type", "Strain Type", False, ("class", "type", "strain type")),
    MappingField("price", "Price", True, ("price", "cost", "amount")),
    MappingField("netWeight", "Net Weight", False, ("net weight", "weight", "net wt", "netweight")),
    MappingField("isLowStock", "Low Stock", False, ("low stock", "lowstock", "stock status", "inventory")),
    MappingField("soldOut", "Sold Out", False, ("sold out", "soldout", "out of stock")),
    MappingField("notes", "Notes", False, ("notes", "comments", "remarks", "description")),
)

BULK_MARKERS = frozenset({"strain name", "strain", "grower", "grow/brand"})
PREPACKAGED_MARKERS = frozenset({"product name", "price", "size", "weight"})


def fields_for_mode(mode: ImportMode) -> tuple[MappingField, ...]:
    return BULK_FIELDS if mode is ImportMode.BULK else PREPACKAGED_FIELDS


def required_fields(mode: ImportMode) -> list[str]:
    return [f.key for f in fields_for_mode(mode) if f.required]


def invert_mapping(column_mapping: Mapping[str, str]) -> dict[str, str]:
    """Invert ``{csv_column: field}`` into ``{field: csv_column}``.

    Columns mapped to an empty field are ignored. Iteration follows the
    mapping's insertion order, so a later duplicate overwrites an earlier one.
    """
    field_to_column: dict[str, str] = {}
    for csv_column, field in column_mapping.items():
        if not field:
            continue
        field_to_column[field] = csv_column
    return field_to_column


def lookup(row: Mapping[str, str], field_mapping: Mapping[str, str], field: str) -> str:
    """Return the raw cell for ``field`` in ``row``, or ``""`` when unmapped or absent."""
    column = field_mapping.get(field)
    if not column:
        return ""
    return row.get(column) or ""


def _alias_matches(header: str, alias: str) -> bool:
    h = header.lower().strip()
    a = alias.lower().strip()
    if not h or not a:
        return False
    if h == a or h in a or a in h:
        return True
    return _SEPARATORS.sub("", h) == _SEPARATORS.sub("", a)


def suggest_mapping(headers: Iterable[str], mode: ImportMode) -> dict[str, str]:
    """Suggest ``{csv_column: field}`` from header names.

    Each field takes the first header that matches one of its aliases (exact,
    substring either way, or equal once spaces/underscores/dashes are removed).
    A header already claimed by an earlier field is not reused.
    """
    header_list = [h for h in headers]
    suggestions: dict[str, str] = {}
    for field in fields_for_mode(mode):
        for header in header_list:
            if header in suggestions:
                continue
            if any(_alias_matches(header, alias) for alias in field.aliases):
                suggestions[header] = field.key
                break
    return suggestions


def detect_mode(headers: Iterable[str]) -> ImportMode | None:
    """Guess the menu mode from header names; None when ambiguous or unknown."""
    lowered = {h.strip().lower() for h in headers}
    is_bulk = bool(lowered & BULK_MARKERS)
    is_prepackaged = bool(lowered & PREPACKAGED_MARKERS)
    if is_bulk and not is_prepackaged:
        return ImportMode.BULK
    if is_prepackaged and not is_bulk:
        return ImportMode.PREPACKAGED
    return None
