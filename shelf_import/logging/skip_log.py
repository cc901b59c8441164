from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from ..models.records import SkippedRow

"""Skipped-row log: JSON Lines buffer flushed once per run.

- Fixed schema ``{timestamp, row, reason, row_data}`` (no extra keys)
- One file per process: ``logs/skipped-YYYYMMDD-HHMMSS.log`` (UTC), created on first flush
- Not thread safe; the CLI flushes from its main thread after the run settles
"""

__all__ = [
    "SkipLogEntry",
    "SkipLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


@dataclass(frozen=True)
class SkipLogEntry:
    timestamp: str  # ISO8601 UTC with 'Z'
    row: int
    reason: str
    row_data: dict[str, str]

    @staticmethod
    def from_skipped(skipped: SkippedRow) -> SkipLogEntry:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return SkipLogEntry(
            timestamp=ts,
            row=skipped.row_index,
            reason=skipped.reason,
            row_data=dict(skipped.row_data),
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)


class SkipLogBuffer:
    """In-memory buffer of skipped rows. ``flush()`` appends JSON Lines."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._entries: list[SkipLogEntry] = []
        self._logs_dir = logs_dir or LOGS_DIR
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"skipped-{stamp}.log"
        return self._file_path

    def append(self, skipped: SkippedRow) -> None:
        self._entries.append(SkipLogEntry.from_skipped(skipped))

    def extend(self, rows: Iterable[SkippedRow]) -> None:
        for r in rows:
            self.append(r)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._entries)

    def flush(self) -> Path | None:
        """Write buffered entries; returns the file path, or None if nothing was buffered."""
        if not self._entries:
            return None
        fp = self.file_path
        fp.parent.mkdir(parents=True, exist_ok=True)
        with fp.open("a", encoding="utf-8") as f:
            for entry in self._entries:
                f.write(entry.to_json_line() + "\n")
        self._entries.clear()
        return fp
