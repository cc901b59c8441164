from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.messages import ImportProgress

"""Row progress display with tqdm (TTY only).

- Single tqdm instance, disabled when stdout is not a TTY so CI logs stay free
  of control sequences
- Fed from the controller's ``on_progress`` callback; updates are absolute
  (``processed`` of ``total``), never incremental
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """Return True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar over the rows of one import run.

    Args:
        total_rows: Number of data rows in the run
        description: Base description for the progress bar
        enabled: Force the bar on/off; defaults to TTY detection
    """

    def __init__(
        self,
        total_rows: int,
        *,
        description: str = "Importing rows",
        enabled: bool | None = None,
    ) -> None:
        self.total_rows = total_rows
        self.description = description
        self.processed = 0
        self.stage = ""

        self.enabled = is_tty_enabled() if enabled is None else enabled
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def update(self, progress: ImportProgress) -> None:
        """Move the bar to ``progress.processed``; out-of-order snapshots are ignored."""
        if progress.processed < self.processed:
            return
        delta = progress.processed - self.processed
        self.processed = progress.processed
        self.stage = progress.stage
        if self.enabled and self.pbar is not None:
            if delta:
                self.pbar.update(delta)
            self.pbar.set_postfix(pct=f"{progress.percentage:.0f}%")

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
