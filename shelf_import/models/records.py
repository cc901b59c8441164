from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

"""Record models produced by the import pipeline.

Records are a tagged union over :class:`Strain` (bulk menus) and
:class:`Product` (pre-packaged menus). ``to_payload()`` methods emit the
camelCase wire form consumed by the UI side.
"""

__all__ = [
    "DestinationDescriptor",
    "Strain",
    "Product",
    "Record",
    "SkippedRow",
    "ImportStats",
    "RunResult",
]


@dataclass(frozen=True)
class DestinationDescriptor:
    """A named shelf a record is filed into. Identity is ``id``."""
    id: str
    name: str

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}

    @staticmethod
    def from_payload(data: dict[str, Any]) -> DestinationDescriptor:
        return DestinationDescriptor(id=str(data["id"]), name=str(data["name"]))


@dataclass(frozen=True)
class Strain:
    """Bulk flower record."""
    id: str
    name: str
    grower: str = ""
    thc: float | None = None
    type: str = "Hybrid"
    is_last_jar: bool = False
    is_sold_out: bool = False
    original_shelf: str = ""

    kind = "strain"

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "grower": self.grower,
            "thc": self.thc,
            "type": self.type,
            "isLastJar": self.is_last_jar,
            "isSoldOut": self.is_sold_out,
            "originalShelf": self.original_shelf,
        }


@dataclass(frozen=True)
class Product:
    """Pre-packaged product record. ``price`` is never None."""
    id: str
    name: str
    brand: str = ""
    thc: float | None = None
    terpenes: float | None = None
    type: str = "Hybrid"
    price: float = 0.0
    net_weight: str = ""
    is_low_stock: bool = False
    is_sold_out: bool = False
    notes: str = ""

    kind = "product"

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "thc": self.thc,
            "terpenes": self.terpenes,
            "type": self.type,
            "price": self.price,
            "netWeight": self.net_weight,
            "isLowStock": self.is_low_stock,
            "isSoldOut": self.is_sold_out,
            "notes": self.notes,
        }


Record = Union[Strain, Product]


@dataclass(frozen=True)
class SkippedRow:
    """One unrecoverable input row.

    ``row_index`` is 1-based and includes the header line, so the first data
    row is 2 (matches what a spreadsheet shows).
    """
    row_index: int
    row_data: dict[str, str]
    reason: str

    def to_payload(self) -> dict[str, Any]:
        return {"rowIndex": self.row_index, "rowData": dict(self.row_data), "reason": self.reason}


@dataclass(frozen=True)
class ImportStats:
    total_processed: int  # rows that produced a record
    total_skipped: int
    shake_count: int | None = None  # prepackaged mode only
    flower_count: int | None = None  # prepackaged mode only

    def to_payload(self) -> dict[str, int]:
        payload = {"totalProcessed": self.total_processed, "totalSkipped": self.total_skipped}
        if self.shake_count is not None:
            payload["shakeCount"] = self.shake_count
        if self.flower_count is not None:
            payload["flowerCount"] = self.flower_count
        return payload


@dataclass(frozen=True)
class RunResult:
    """Terminal artifact of a successful run, built exactly once."""
    shelf_assignments: dict[str, list[Record]]
    created_shelves: list[DestinationDescriptor]
    skipped_rows: list[SkippedRow]
    stats: ImportStats
    mode: str = field(default="bulk", compare=False)

    @property
    def records(self) -> list[Record]:
        return [r for items in self.shelf_assignments.values() for r in items]

    def to_payload(self) -> dict[str, Any]:
        return {
            "shelfAssignments": {
                shelf_id: [r.to_payload() for r in items]
                for shelf_id, items in self.shelf_assignments.items()
            },
            "createdShelves": [s.to_payload() for s in self.created_shelves],
            "skippedRows": [s.to_payload() for s in self.skipped_rows],
            "stats": self.stats.to_payload(),
        }
