from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..models.records import DestinationDescriptor
from ..models.request import ImportMode
from .id_pool import IdPool

"""Shelf resolution: map a row's category label to a destination id.

Bulk mode does one case-insensitive exact match. Pre-packaged mode builds a
canonical label (``"3.5"`` + shake/flower -> ``"3.5g Flower"``) and tries a
short list of fallbacks before giving up or creating a shelf.
"""

__all__ = [
    "Resolution",
    "DestinationResolver",
    "is_shake",
    "candidate_labels",
]

logger = logging.getLogger(__name__)

SHAKE_SUFFIX = "Shake"
FLOWER_SUFFIX = "Flower"


def is_shake(item_name: str) -> bool:
    return "shake" in item_name.lower()


def candidate_labels(label: str, mode: ImportMode, shake: bool = False) -> list[str]:
    """Labels tried, in order, when matching ``label`` against known shelves.

    Pre-packaged order: canonical label, raw label, raw + "g" (when the label
    lacks a trailing "g"), raw without its trailing "g" (when present).
    """
    if mode is ImportMode.BULK:
        return [label]
    has_g = label.lower().endswith("g")
    weight = label if has_g else f"{label}g"
    canonical = f"{weight} {SHAKE_SUFFIX if shake else FLOWER_SUFFIX}"
    candidates = [canonical, label]
    if has_g:
        stripped = label[:-1]
        if stripped:
            candidates.append(stripped)
    else:
        candidates.append(f"{label}g")
    # Preserve order, drop case-insensitive duplicates.
    seen: set[str] = set()
    unique: list[str] = []
    for c in candidates:
        key = c.lower()
        if key not in seen:
            seen.add(key)
            unique.append(c)
    return unique


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one label.

    ``destination_id`` is None when the label is unresolved and creation is not
    allowed; ``attempted`` then lists the labels tried.
    """
    destination_id: str | None
    attempted: tuple[str, ...]
    created: DestinationDescriptor | None = None

    @property
    def resolved(self) -> bool:
        return self.destination_id is not None


class DestinationResolver:
    """Run-local shelf lookup table.

    Seeded from the caller's shelves (first name wins on case-insensitive
    duplicates) and grows as shelves are created. Once a raw label resolves,
    later rows with the same label and shake class reuse the same id.
    """

    def __init__(
        self,
        existing: Iterable[DestinationDescriptor],
        mode: ImportMode,
        id_pool: IdPool,
        *,
        allow_create: bool = False,
    ) -> None:
        self.mode = mode
        self.allow_create = allow_create
        self._id_pool = id_pool
        self._by_name: dict[str, str] = {}
        self._resolved_labels: dict[tuple[str, bool], str] = {}
        self.created: list[DestinationDescriptor] = []
        for shelf in existing:
            self._by_name.setdefault(shelf.name.lower(), shelf.id)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._by_name

    def resolve(self, label: str, item_name: str = "") -> Resolution:
        """Resolve ``label`` (raw category text) to a shelf id.

        Args:
            label: Category/shelf cell of the row
            item_name: Item name, used in pre-packaged mode for shake detection

        Returns:
            Resolution with the id, the labels tried and the new shelf if one was created
        """
        shake = is_shake(item_name) if self.mode is ImportMode.PREPACKAGED else False
        key = (label.lower(), shake)
        attempted = tuple(candidate_labels(label, self.mode, shake))

        # Shelves created later must not move a label that already resolved.
        cached = self._resolved_labels.get(key)
        if cached is not None:
            return Resolution(destination_id=cached, attempted=attempted)

        for candidate in attempted:
            shelf_id = self._by_name.get(candidate.lower())
            if shelf_id is not None:
                self._resolved_labels[key] = shelf_id
                return Resolution(destination_id=shelf_id, attempted=attempted)

        if not self.allow_create:
            return Resolution(destination_id=None, attempted=attempted)

        shelf = DestinationDescriptor(id=self._id_pool.get(), name=label)
        self._by_name[label.lower()] = shelf.id
        self._resolved_labels[key] = shelf.id
        self.created.append(shelf)
        logger.debug("created shelf id=%s name=%r", shelf.id, label)
        return Resolution(destination_id=shelf.id, attempted=attempted, created=shelf)
