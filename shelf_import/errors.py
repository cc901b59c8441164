from __future__ import annotations

"""Exception hierarchy shared by the worker, the controller and the CLI.

Per-row problems never raise out of the pipeline (they become skipped rows);
these classes describe run-level and host-level outcomes only.
"""

__all__ = [
    "ShelfImportError",
    "RequestError",
    "ImportRunError",
    "ImportCancelledError",
    "WorkerCrashedError",
    "ImportBusyError",
]

CANCELLED_MESSAGE = "Import cancelled"


class ShelfImportError(Exception):
    """Base exception for import failures."""
    pass


class RequestError(ShelfImportError):
    """Raised when an import request payload is malformed."""


class ImportRunError(ShelfImportError):
    """The worker reported a run-level ERROR."""


class ImportCancelledError(ImportRunError):
    """The run was cancelled, either acknowledged by the worker or forced after the grace period."""

    def __init__(self, message: str = CANCELLED_MESSAGE) -> None:
        super().__init__(message)


class WorkerCrashedError(ImportRunError):
    """The worker process could not be spawned or died without a terminal message."""


class ImportBusyError(ShelfImportError):
    """start() was called while another run is still in flight."""
