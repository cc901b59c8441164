"""Domain models for the CSV -> shelf import pipeline.

Records (strain/product tagged union), request, run result and the worker
message protocol.
"""

from .messages import (
    CancelMessage,
    CompleteMessage,
    ErrorMessage,
    ImportProgress,
    ProcessMessage,
    ProgressMessage,
)
from .records import DestinationDescriptor, ImportStats, Product, Record, RunResult, SkippedRow, Strain
from .request import ImportMode, ImportRequest

__all__ = [
    # Records
    "DestinationDescriptor",
    "Strain",
    "Product",
    "Record",
    "SkippedRow",
    "ImportStats",
    "RunResult",
    # Request
    "ImportMode",
    "ImportRequest",
    # Messages
    "ProgressMessage",
    "CompleteMessage",
    "ErrorMessage",
    "ProcessMessage",
    "CancelMessage",
    "ImportProgress",
]
