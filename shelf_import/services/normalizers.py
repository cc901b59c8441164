from __future__ import annotations

import math
import re

"""Field normalizers for raw CSV cell strings.

Every function here is pure and total: any string (or None) produces a value,
never an exception. Numeric helpers return ``None`` instead of NaN.
"""

__all__ = [
    "extract_numeric",
    "parse_price",
    "normalize_strain_type",
    "parse_boolean_field",
    "STRAIN_TYPE_ALIASES",
    "DEFAULT_STRAIN_TYPE",
    "SOLD_OUT_VALUES",
    "LAST_JAR_VALUES",
    "LOW_STOCK_VALUES",
]

NUMERIC_VALUE_PATTERN = re.compile(r"(\d*\.?\d+)")
PRICE_CLEANUP_PATTERN = re.compile(r"[$,]")
TYPE_NORMALIZE_PATTERN = re.compile(r"[\s\-./]")

DEFAULT_STRAIN_TYPE = "Hybrid"

# Keys are uppercased with whitespace, '-', '.' and '/' removed.
STRAIN_TYPE_ALIASES: dict[str, str] = {
    "S": "Sativa",
    "SAT": "Sativa",
    "SATIVA": "Sativa",
    "SH": "Sativa-Hybrid",
    "HS": "Sativa-Hybrid",
    "SATHYB": "Sativa-Hybrid",
    "SATIVAHYBRID": "Sativa-Hybrid",
    "H": "Hybrid",
    "HYB": "Hybrid",
    "HYBRID": "Hybrid",
    "IH": "Indica-Hybrid",
    "HI": "Indica-Hybrid",
    "INDHYB": "Indica-Hybrid",
    "INDICAHYBRID": "Indica-Hybrid",
    "I": "Indica",
    "IND": "Indica",
    "INDICA": "Indica",
}

SOLD_OUT_VALUES = frozenset({
    "soldout", "sold out", "true", "1", "yes", "out of stock",
    "unavailable", "empty", "oos", "out",
})

LAST_JAR_VALUES = frozenset({
    "lastjar", "last jar", "true", "1", "yes",
})

LOW_STOCK_VALUES = frozenset({
    "true", "1", "yes", "last 5 units", "last5units", "last 5", "last5",
    "final units", "remaining units", "low inventory", "last few",
    "limited stock", "low stock", "lowstock",
})


def _first_number(text: str) -> float | None:
    match = NUMERIC_VALUE_PATTERN.search(text)
    if match is None:
        return None
    value = float(match.group(1))
    # Regex only admits digits and one dot, but keep the no-NaN contract explicit.
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def extract_numeric(value: str | None) -> float | None:
    """Return the first decimal number in ``value``.

    Args:
        value: Raw cell text such as ``"24.5%"`` or ``"THC 18"``

    Returns:
        The parsed number, or None for empty input, ``"-"`` or text without digits
    """
    if not value or value == "-":
        return None
    return _first_number(value)


def parse_price(value: str | None) -> float:
    """Parse a price cell, stripping ``$`` and thousands separators.

    Price is a required field, so unparsable input yields ``0.0`` rather than None.
    """
    if not value:
        return 0.0
    number = _first_number(PRICE_CLEANUP_PATTERN.sub("", value))
    return number if number is not None else 0.0


def normalize_strain_type(value: str | None) -> str:
    """Map a free-form strain class (``"S"``, ``"indica"``, ``"H/S"``...) to its canonical label.

    Unknown or empty input falls back to ``Hybrid``. Canonical labels map to
    themselves, so the function is idempotent.
    """
    if not value:
        return DEFAULT_STRAIN_TYPE
    key = TYPE_NORMALIZE_PATTERN.sub("", value.upper())
    return STRAIN_TYPE_ALIASES.get(key, DEFAULT_STRAIN_TYPE)


def parse_boolean_field(value: str | None, true_values: frozenset[str]) -> bool:
    if not value:
        return False
    return value.strip().lower() in true_values
