from __future__ import annotations

import logging
import multiprocessing
import queue
import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Future
from typing import Any

from ..errors import (
    ImportBusyError,
    ImportCancelledError,
    ImportRunError,
    RequestError,
    WorkerCrashedError,
)
from ..models.messages import (
    CancelMessage,
    CompleteMessage,
    ErrorMessage,
    ImportProgress,
    ProcessMessage,
    ProgressMessage,
)
from ..models.records import DestinationDescriptor, RunResult
from ..models.request import ImportMode, ImportRequest
from .id_pool import DEFAULT_POOL_SIZE
from .pipeline import DEFAULT_CHUNK_SIZE
from .worker import STOP, worker_main

"""Host-side controller for the import worker process.

``ImportController.start()`` spawns one worker process per run, sends PROCESS
and returns a ``concurrent.futures.Future`` that settles exactly once:

- COMPLETE -> result is the RunResult
- ERROR -> ImportRunError (ImportCancelledError when the worker acknowledged a cancel)
- worker died without a terminal message, or could not be spawned -> WorkerCrashedError
- cancel() not acknowledged within the grace period -> worker terminated, ImportCancelledError

A listener thread reads the worker's outbox in order and keeps ``progress``
current. Only one run may be in flight per controller.
"""

__all__ = [
    "ImportController",
    "DEFAULT_CANCEL_GRACE_SECONDS",
    "DEFAULT_START_METHOD",
]

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_GRACE_SECONDS = 0.1
DEFAULT_START_METHOD = "spawn"
_POLL_INTERVAL = 0.05
_JOIN_TIMEOUT = 2.0
_IDLE = object()


class ImportController:
    """Owns the worker lifecycle and turns its messages into a future + live progress.

    Args:
        chunk_size: Rows per chunk, forwarded to the worker
        id_pool_size: Identifier pool batch size, forwarded to the worker
        cancel_grace_seconds: Time the worker gets to acknowledge CANCEL before it
            is terminated
        start_method: ``multiprocessing`` start method (``spawn``, ``fork``, ``forkserver``)
        log_level: Log level applied inside the worker process
        on_progress: Optional callback invoked (on the listener thread) with each
            ImportProgress

    Example::

        with ImportController() as controller:
            future = controller.start(rows, {"Category": "shelf", "Name": "name"}, "bulk", shelves, True)
            result = future.result()
    """

    def __init__(
        self,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        id_pool_size: int = DEFAULT_POOL_SIZE,
        cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS,
        start_method: str | None = DEFAULT_START_METHOD,
        log_level: str = "WARNING",
        on_progress: Callable[[ImportProgress], None] | None = None,
    ) -> None:
        if cancel_grace_seconds < 0:
            raise ValueError(f"cancel_grace_seconds must be >= 0, got {cancel_grace_seconds}")
        self.chunk_size = chunk_size
        self.id_pool_size = id_pool_size
        self.cancel_grace_seconds = cancel_grace_seconds
        self.log_level = log_level
        self.on_progress = on_progress
        self._ctx = multiprocessing.get_context(start_method)

        self._lock = threading.Lock()
        self._run_id = 0
        self._settled = True
        self._future: Future[RunResult] | None = None
        self._process: Any = None
        self._inbox: Any = None
        self._outbox: Any = None
        self._listener: threading.Thread | None = None
        self._cancel_timer: threading.Timer | None = None
        self._progress: ImportProgress | None = None
        self._last_error: str | None = None
        self._disposed = False

    # -- public API -----------------------------------------------------

    @property
    def progress(self) -> ImportProgress | None:
        """Latest progress of the run in flight, or None when idle."""
        with self._lock:
            return self._progress

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return not self._settled

    @property
    def last_error(self) -> str | None:
        """Message of the last rejected run (cleared when a new run starts)."""
        with self._lock:
            return self._last_error

    def start(
        self,
        rows: list[dict[str, str]],
        column_mapping: Mapping[str, str],
        mode: ImportMode | str,
        existing_destinations: Iterable[DestinationDescriptor | Mapping[str, str]] | None = None,
        allow_create_destinations: bool = False,
    ) -> Future[RunResult]:
        """Start one run in a fresh worker process.

        Raises:
            ImportBusyError: a previous run has not settled yet

        Returns:
            Future settling with the RunResult or one of the ImportRunError subclasses.
            A malformed request settles the future with RequestError without
            spawning a worker.
        """
        future: Future[RunResult] = Future()
        future.set_running_or_notify_cancel()

        with self._lock:
            if self._disposed:
                raise RuntimeError("controller has been disposed")
            if not self._settled:
                raise ImportBusyError("an import is already running")
            self._run_id += 1
            run_id = self._run_id
            self._settled = False
            self._future = future
            self._last_error = None

        try:
            request = ImportRequest.create(
                rows,
                column_mapping,
                mode,
                list(existing_destinations or []),
                allow_create_destinations,
            )
        except RequestError as e:
            self._settle(run_id, error=e)
            return future

        with self._lock:
            self._progress = ImportProgress(processed=0, total=request.total, stage="Initializing...")

        try:
            inbox = self._ctx.Queue()
            outbox = self._ctx.Queue()
            process = self._ctx.Process(
                target=worker_main,
                args=(inbox, outbox, self.chunk_size, self.id_pool_size, self.log_level),
                name=f"shelf-import-worker-{run_id}",
                daemon=True,
            )
            process.start()
        except Exception as e:
            logger.error("failed to start import worker: %s", e)
            self._settle(run_id, error=WorkerCrashedError(f"failed to start import worker: {e}"))
            return future

        listener = threading.Thread(
            target=self._listen,
            args=(run_id, process, outbox),
            name=f"shelf-import-listener-{run_id}",
            daemon=True,
        )
        with self._lock:
            self._process = process
            self._inbox = inbox
            self._outbox = outbox
            self._listener = listener

        logger.info("import run %d started pid=%s rows=%d", run_id, process.pid, request.total)
        inbox.put(ProcessMessage(request=request))
        listener.start()
        return future

    def cancel(self) -> bool:
        """Request cancellation of the run in flight.

        Sends CANCEL and arms the grace timer; when it fires the worker is
        terminated and the future rejected with ImportCancelledError if it is
        still pending.

        Returns:
            True if a run was in flight, False otherwise
        """
        with self._lock:
            if self._settled:
                return False
            if self._cancel_timer is not None:
                return True
            run_id = self._run_id
            inbox = self._inbox
            timer = threading.Timer(self.cancel_grace_seconds, self._force_cancel, args=(run_id,))
            timer.daemon = True
            self._cancel_timer = timer

        if inbox is not None:
            inbox.put(CancelMessage())
        logger.info("import run %d cancel requested (grace=%.3fs)", run_id, self.cancel_grace_seconds)
        timer.start()
        return True

    def dispose(self) -> None:
        """Tear down any worker; a pending future is rejected as cancelled."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            run_id = self._run_id
            listener = self._listener
        self._settle(run_id, error=ImportCancelledError(), force=True)
        if listener is not None and listener is not threading.current_thread():
            listener.join(timeout=_JOIN_TIMEOUT)

    def __enter__(self) -> ImportController:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.dispose()

    # -- internals ------------------------------------------------------

    def _is_current(self, run_id: int) -> bool:
        with self._lock:
            return run_id == self._run_id and not self._settled

    def _receive(self, process: Any, outbox: Any) -> Any:
        """Next outbox message, ``_IDLE`` on timeout, or None once the worker is gone."""
        try:
            return outbox.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            if process.is_alive():
                return _IDLE
        # The worker may have exited right after its last put.
        try:
            return outbox.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            return None

    def _listen(self, run_id: int, process: Any, outbox: Any) -> None:
        try:
            while self._is_current(run_id):
                try:
                    message = self._receive(process, outbox)
                except (EOFError, OSError, ValueError) as e:
                    # Queue torn down underneath us; only an error if the run is still pending.
                    self._settle(run_id, error=WorkerCrashedError(f"lost connection to import worker: {e}"))
                    break
                if message is _IDLE:
                    continue
                if message is None:
                    self._settle(
                        run_id,
                        error=WorkerCrashedError(
                            f"import worker exited without a result (exitcode={process.exitcode})"
                        ),
                    )
                    break
                try:
                    self._handle(run_id, message)
                except Exception as e:
                    logger.exception("import run %d: failed to handle %s", run_id, type(message).__name__)
                    self._settle(run_id, error=ImportRunError(f"failed to handle worker message: {e}"))
                    break
        finally:
            outbox.close()

    def _handle(self, run_id: int, message: Any) -> None:
        if isinstance(message, ProgressMessage):
            progress = message.to_progress()
            with self._lock:
                if run_id != self._run_id or self._settled:
                    return
                self._progress = progress
            logger.debug("import run %d progress %d/%d", run_id, progress.processed, progress.total)
            if self.on_progress is not None:
                try:
                    self.on_progress(progress)
                except Exception:
                    logger.exception("import run %d: progress callback failed", run_id)
        elif isinstance(message, CompleteMessage):
            self._settle(run_id, result=message.result)
        elif isinstance(message, ErrorMessage):
            error: ImportRunError
            if message.cancelled:
                error = ImportCancelledError(message.message)
            else:
                error = ImportRunError(message.message)
            self._settle(run_id, error=error)
        else:
            logger.warning("import run %d: unexpected message %r", run_id, message)

    def _force_cancel(self, run_id: int) -> None:
        if self._settle(run_id, error=ImportCancelledError(), force=True):
            logger.warning("import run %d: worker did not acknowledge cancel; terminated", run_id)

    def _settle(
        self,
        run_id: int,
        *,
        result: RunResult | None = None,
        error: BaseException | None = None,
        force: bool = False,
    ) -> bool:
        """Settle the run's future once and tear down its worker. Returns False if already settled."""
        with self._lock:
            if run_id != self._run_id or self._settled:
                return False
            self._settled = True
            future = self._future
            timer, self._cancel_timer = self._cancel_timer, None
            process, self._process = self._process, None
            inbox, self._inbox = self._inbox, None
            self._outbox = None
            self._progress = None
            self._last_error = str(error) if error is not None else None

        if timer is not None:
            timer.cancel()
        self._stop_worker(process, inbox, force=force or error is not None)

        if error is not None:
            logger.info("import run %d ended: %s", run_id, error)
            future.set_exception(error)
        else:
            logger.info("import run %d completed", run_id)
            future.set_result(result)
        return True

    def _stop_worker(self, process: Any, inbox: Any, *, force: bool) -> None:
        if process is None:
            return
        if not force and inbox is not None and process.is_alive():
            inbox.put(STOP)
            process.join(timeout=_JOIN_TIMEOUT)
        if process.is_alive():
            process.terminate()
            process.join(timeout=_JOIN_TIMEOUT)
        if process.is_alive():
            logger.warning("import worker pid=%s ignored terminate; killing", process.pid)
            process.kill()
            process.join(timeout=_JOIN_TIMEOUT)
        if inbox is not None:
            inbox.cancel_join_thread()
            inbox.close()
