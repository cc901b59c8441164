from __future__ import annotations

import itertools
import logging
import os
import time
import uuid
from collections.abc import Callable

"""Batch-refilled identifier pool.

Ids come from ``uuid.uuid4()`` which draws 122 random bits from ``os.urandom``;
collision probability inside one run (at most a few hundred thousand ids) is
negligible. If the OS random source is unavailable the pool switches, for the
rest of its life, to ``<run-start-ns>-<pid>-<counter>`` ids which are unique per
process because the counter is monotonic.
"""

__all__ = [
    "IdPool",
    "DEFAULT_POOL_SIZE",
]

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 500


class IdPool:
    """In-memory buffer of unique ids, refilled in one batch when drained."""

    def __init__(
        self,
        batch_size: int = DEFAULT_POOL_SIZE,
        *,
        random_source: Callable[[], uuid.UUID] = uuid.uuid4,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = batch_size
        self._random_source = random_source
        self._buffer: list[str] = []
        self._counter = itertools.count(1)
        self._run_start_ns = time.time_ns()
        self.fallback_active = False
        self.refills = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def get(self) -> str:
        """Pop one id, refilling the buffer first if it is empty."""
        if not self._buffer:
            self._refill()
        return self._buffer.pop()

    def reset(self) -> None:
        """Drop buffered ids and restart the fallback counter epoch."""
        self._buffer.clear()
        self._run_start_ns = time.time_ns()

    def _refill(self) -> None:
        self.refills += 1
        while len(self._buffer) < self.batch_size:
            self._buffer.append(self._next_id())

    def _next_id(self) -> str:
        if not self.fallback_active:
            try:
                return str(self._random_source())
            except (NotImplementedError, OSError) as e:
                logger.warning("random id source unavailable (%s); using counter ids", e)
                self.fallback_active = True
        return f"{self._run_start_ns:x}-{os.getpid():x}-{next(self._counter):08x}"
