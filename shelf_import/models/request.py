from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import RequestError
from .records import DestinationDescriptor

"""ImportRequest model: the PROCESS payload for one run."""

__all__ = [
    "ImportMode",
    "ImportRequest",
]


class ImportMode(Enum):
    """Menu mode a run imports into.

    - BULK: bulk flower menus, rows become :class:`Strain` records
    - PREPACKAGED: pre-packaged menus, rows become :class:`Product` records
    """
    BULK = "bulk"
    PREPACKAGED = "prepackaged"

    @classmethod
    def parse(cls, value: ImportMode | str) -> ImportMode:
        if isinstance(value, ImportMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            allowed = ", ".join(m.value for m in cls)
            raise RequestError(f"unsupported mode '{value}' (expected one of: {allowed})") from e


@dataclass(frozen=True)
class ImportRequest:
    rows: list[dict[str, str]]
    column_mapping: dict[str, str]  # csvColumn -> field
    mode: ImportMode
    existing_destinations: list[DestinationDescriptor]
    allow_create_destinations: bool = False

    @property
    def total(self) -> int:
        return len(self.rows)

    @staticmethod
    def create(
        rows: Any,
        column_mapping: Any,
        mode: ImportMode | str,
        existing_destinations: Any = None,
        allow_create_destinations: bool = False,
    ) -> ImportRequest:
        """Build a request from loosely typed inputs, validating shape.

        Raises:
            RequestError: rows is not a list of mappings, the mapping is not a
                str->str mapping, the mode is unknown or a destination lacks id/name
        """
        if not isinstance(rows, list):
            raise RequestError(f"rows must be a list, got {type(rows).__name__}")
        clean_rows: list[dict[str, str]] = []
        for i, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise RequestError(f"row {i} must be a mapping, got {type(row).__name__}")
            clean_rows.append({str(k): "" if v is None else str(v) for k, v in row.items()})

        if not isinstance(column_mapping, Mapping):
            raise RequestError(
                f"column mapping must be a mapping, got {type(column_mapping).__name__}"
            )
        mapping = {str(k): str(v) for k, v in column_mapping.items()}

        destinations: list[DestinationDescriptor] = []
        for d in existing_destinations or []:
            if isinstance(d, DestinationDescriptor):
                destinations.append(d)
                continue
            if not isinstance(d, Mapping) or "id" not in d or "name" not in d:
                raise RequestError(f"invalid destination descriptor: {d!r}")
            destinations.append(DestinationDescriptor.from_payload(dict(d)))

        return ImportRequest(
            rows=clean_rows,
            column_mapping=mapping,
            mode=ImportMode.parse(mode),
            existing_destinations=destinations,
            allow_create_destinations=bool(allow_create_destinations),
        )

    @staticmethod
    def from_payload(payload: Any) -> ImportRequest:
        """Parse the camelCase wire form ``{rows, columnMapping, mode, existingDestinations, allowCreateDestinations}``."""
        if not isinstance(payload, Mapping):
            raise RequestError(f"request payload must be a mapping, got {type(payload).__name__}")
        missing = [k for k in ("rows", "columnMapping", "mode") if k not in payload]
        if missing:
            raise RequestError(f"request payload missing keys: {missing}")
        return ImportRequest.create(
            rows=payload["rows"],
            column_mapping=payload["columnMapping"],
            mode=payload["mode"],
            existing_destinations=payload.get("existingDestinations", []),
            allow_create_destinations=payload.get("allowCreateDestinations", False),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "columnMapping": self.column_mapping,
            "mode": self.mode.value,
            "existingDestinations": [d.to_payload() for d in self.existing_destinations],
            "allowCreateDestinations": self.allow_create_destinations,
        }
