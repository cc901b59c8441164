from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from ..errors import CANCELLED_MESSAGE, RequestError
from .records import RunResult
from .request import ImportRequest

"""Typed message protocol between the controller and the import worker.

Outbound (worker -> host): zero or more PROGRESS, then exactly one of COMPLETE
or ERROR, always last. Inbound (host -> worker): PROCESS starts a run, CANCEL
may arrive at any time until the terminal message.

Messages travel through ``multiprocessing`` queues as pickled dataclasses;
``to_payload()`` gives the ``{"type": ..., "payload": ...}`` wire dict.
"""

__all__ = [
    "ProgressMessage",
    "CompleteMessage",
    "ErrorMessage",
    "ProcessMessage",
    "CancelMessage",
    "OutboundMessage",
    "InboundMessage",
    "ImportProgress",
    "message_from_payload",
]


@dataclass(frozen=True)
class ImportProgress:
    """Latest progress snapshot exposed by the controller."""
    processed: int
    total: int
    stage: str

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.processed / self.total * 100)


@dataclass(frozen=True)
class ProgressMessage:
    processed: int
    total: int
    stage: str

    type = "PROGRESS"

    def to_progress(self) -> ImportProgress:
        return ImportProgress(processed=self.processed, total=self.total, stage=self.stage)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "payload": {"processed": self.processed, "total": self.total, "stage": self.stage},
        }


@dataclass(frozen=True)
class CompleteMessage:
    result: RunResult

    type = "COMPLETE"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.result.to_payload()}


@dataclass(frozen=True)
class ErrorMessage:
    message: str
    cancelled: bool = False

    type = "ERROR"

    @staticmethod
    def cancellation() -> ErrorMessage:
        return ErrorMessage(message=CANCELLED_MESSAGE, cancelled=True)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "payload": {"message": self.message}}


@dataclass(frozen=True)
class ProcessMessage:
    request: ImportRequest

    type = "PROCESS"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.request.to_payload()}


@dataclass(frozen=True)
class CancelMessage:
    type = "CANCEL"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type}


OutboundMessage = Union[ProgressMessage, CompleteMessage, ErrorMessage]
InboundMessage = Union[ProcessMessage, CancelMessage]


def message_from_payload(data: Any) -> InboundMessage:
    """Decode an inbound wire dict (``PROCESS`` or ``CANCEL``).

    Raises:
        RequestError: unknown message type or malformed PROCESS payload
    """
    if not isinstance(data, dict) or "type" not in data:
        raise RequestError(f"malformed message: {data!r}")
    kind = data["type"]
    if kind == CancelMessage.type:
        return CancelMessage()
    if kind in (ProcessMessage.type, "PROCESS_CSV"):
        return ProcessMessage(request=ImportRequest.from_payload(data.get("payload")))
    raise RequestError(f"unknown message type: {kind!r}")
