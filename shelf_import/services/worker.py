from __future__ import annotations

import logging
import queue
import time
from collections import deque
from typing import Any

from ..errors import RequestError
from ..logging.init import set_level, setup_logging
from ..models.messages import (
    CancelMessage,
    ErrorMessage,
    InboundMessage,
    OutboundMessage,
    ProcessMessage,
    message_from_payload,
)
from .id_pool import DEFAULT_POOL_SIZE, IdPool
from .pipeline import DEFAULT_CHUNK_SIZE, ImportSession, run_import

"""Import worker: the background side of the message channel.

The worker owns an :class:`ImportSession` and two queues. ``inbox`` carries
PROCESS / CANCEL from the host (``None`` asks the worker to exit); ``outbox``
carries PROGRESS then exactly one COMPLETE or ERROR per run.

While a run is in flight the inbox is only read at chunk boundaries, through
the pipeline's yield point.
"""

__all__ = [
    "ImportWorker",
    "dispatch",
    "worker_main",
    "STOP",
]

logger = logging.getLogger(__name__)

STOP = None


def _decode(message: Any) -> InboundMessage:
    if isinstance(message, (ProcessMessage, CancelMessage)):
        return message
    return message_from_payload(message)


def dispatch(
    message: Any,
    session: ImportSession,
    emit: Any,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    yield_point: Any = None,
) -> None:
    """Handle one inbound message for an idle worker.

    PROCESS runs the pipeline to its terminal message. A malformed request or
    any exception escaping the pipeline becomes the run's ERROR, so every
    PROCESS produces exactly one terminal message. CANCEL with no run in
    flight is ignored.
    """
    try:
        decoded = _decode(message)
    except RequestError as e:
        logger.error("rejected request: %s", e)
        emit(ErrorMessage(message=f"Invalid import request: {e}"))
        return

    if isinstance(decoded, CancelMessage):
        logger.debug("CANCEL received with no run in flight; ignored")
        return

    try:
        run_import(
            decoded.request,
            session,
            emit,
            chunk_size=chunk_size,
            yield_point=yield_point,
        )
    except Exception as e:
        logger.exception("import run failed")
        emit(ErrorMessage(message=str(e) or type(e).__name__))


class ImportWorker:
    """Serves PROCESS requests from ``inbox`` one at a time.

    Args:
        inbox: Queue of inbound messages (ProcessMessage, CancelMessage, wire
            dicts, or ``STOP``)
        outbox: Queue receiving outbound messages
        session: Worker-owned session; created if omitted
        chunk_size: Rows per chunk
    """

    def __init__(
        self,
        inbox: Any,
        outbox: Any,
        session: ImportSession | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.inbox = inbox
        self.outbox = outbox
        self.session = session or ImportSession()
        self.chunk_size = chunk_size
        self._stop_requested = False
        self._pending: deque[Any] = deque()

    def emit(self, message: OutboundMessage) -> None:
        self.outbox.put(message)

    def serve(self) -> None:
        """Block on the inbox until ``STOP`` arrives.

        PROCESS requests that arrive while a run is in flight are served in
        order once it finishes. Requests still queued at STOP end with a
        cancellation ERROR.
        """
        while not self._stop_requested:
            message = self._pending.popleft() if self._pending else self.inbox.get()
            if message is STOP:
                break
            dispatch(
                message,
                self.session,
                self.emit,
                chunk_size=self.chunk_size,
                yield_point=self.checkpoint,
            )
        while self._pending:
            self._pending.popleft()
            self.emit(ErrorMessage.cancellation())
        logger.debug("worker stopped")

    def checkpoint(self) -> None:
        """Cooperative yield between chunks: drain pending control messages."""
        time.sleep(0)
        while True:
            try:
                message = self.inbox.get_nowait()
            except queue.Empty:
                return
            if message is STOP:
                # STOP during a run cancels it.
                self._stop_requested = True
                self.session.request_cancel()
            elif isinstance(message, CancelMessage) or (
                isinstance(message, dict) and message.get("type") == CancelMessage.type
            ):
                logger.info("CANCEL received")
                self.session.request_cancel()
            else:
                logger.warning("PROCESS received while a run is in flight; queued")
                self._pending.append(message)


def worker_main(
    inbox: Any,
    outbox: Any,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    id_pool_size: int = DEFAULT_POOL_SIZE,
    log_level: str = "INFO",
) -> None:
    """Process entry point used by :class:`ImportController`."""
    setup_logging(log_level)
    set_level(log_level)
    session = ImportSession(id_pool=IdPool(id_pool_size))
    ImportWorker(inbox, outbox, session, chunk_size=chunk_size).serve()
