from __future__ import annotations

import time
from unittest.mock import patch

import pytest

from shelf_import.errors import (
    ImportBusyError,
    ImportCancelledError,
    ImportRunError,
    RequestError,
    WorkerCrashedError,
)
from shelf_import.models.messages import ImportProgress
from shelf_import.services.controller import ImportController

"""Controller tests against real worker processes (spawn start method)."""

RESULT_TIMEOUT = 60


def test_start_completes_and_reports_progress(make_bulk_rows, bulk_mapping, bulk_shelves):
    seen: list[ImportProgress] = []
    with ImportController(chunk_size=25, on_progress=seen.append) as controller:
        future = controller.start(make_bulk_rows(100), bulk_mapping, "bulk", bulk_shelves)
        result = future.result(timeout=RESULT_TIMEOUT)
        assert result.stats.total_processed == 100
        assert len(result.shelf_assignments["top"]) == 100
        assert [p.processed for p in seen] == [25, 50, 75, 100]
        assert controller.is_processing is False
        assert controller.progress is None
        assert controller.last_error is None


def test_sequential_runs_reuse_controller(make_bulk_rows, bulk_mapping, bulk_shelves):
    with ImportController() as controller:
        first = controller.start(make_bulk_rows(3), bulk_mapping, "bulk", bulk_shelves).result(timeout=RESULT_TIMEOUT)
        second = controller.start(make_bulk_rows(4), bulk_mapping, "bulk", [], True).result(timeout=RESULT_TIMEOUT)
    assert first.stats.total_processed == 3
    assert second.stats.total_processed == 4
    assert len(second.created_shelves) == 1
    assert {r.id for r in first.records}.isdisjoint({r.id for r in second.records})


def test_busy_while_running(make_bulk_rows, bulk_mapping, bulk_shelves):
    with ImportController(chunk_size=10) as controller:
        future = controller.start(make_bulk_rows(50000), bulk_mapping, "bulk", bulk_shelves)
        assert controller.is_processing is True
        with pytest.raises(ImportBusyError):
            controller.start([], bulk_mapping, "bulk")
        assert controller.progress is not None
        assert controller.progress.total == 50000
        controller.cancel()
        with pytest.raises(ImportCancelledError):
            future.result(timeout=RESULT_TIMEOUT)


def test_cancel_rejects_with_cancelled_error(make_bulk_rows, bulk_mapping, bulk_shelves):
    with ImportController(chunk_size=10, cancel_grace_seconds=2.0) as controller:
        future = controller.start(make_bulk_rows(50000), bulk_mapping, "bulk", bulk_shelves)
        assert controller.cancel() is True
        with pytest.raises(ImportCancelledError) as exc_info:
            future.result(timeout=RESULT_TIMEOUT)
        assert str(exc_info.value) == "Import cancelled"
        assert isinstance(exc_info.value, ImportRunError)
        assert controller.is_processing is False
        assert controller.cancel() is False


def test_forced_termination_after_grace(make_bulk_rows, bulk_mapping, bulk_shelves):
    # A zero grace period terminates the worker without waiting for the acknowledgment.
    with ImportController(chunk_size=10, cancel_grace_seconds=0.0) as controller:
        future = controller.start(make_bulk_rows(50000), bulk_mapping, "bulk", bulk_shelves)
        controller.cancel()
        with pytest.raises(ImportCancelledError):
            future.result(timeout=RESULT_TIMEOUT)


def test_malformed_request_rejected_without_worker(bulk_mapping):
    with ImportController() as controller:
        future = controller.start("not rows", bulk_mapping, "bulk")  # type: ignore[arg-type]
        with pytest.raises(RequestError):
            future.result(timeout=1)
        assert controller.is_processing is False
        assert "rows must be a list" in controller.last_error


def test_worker_crash_rejects_future(bulk_mapping):
    # time.sleep cannot accept the worker arguments, so the child exits without a message.
    with patch("shelf_import.services.controller.worker_main", time.sleep):
        with ImportController() as controller:
            future = controller.start([{"Category": "x"}], bulk_mapping, "bulk")
            with pytest.raises(WorkerCrashedError):
                future.result(timeout=RESULT_TIMEOUT)


def test_spawn_failure_rejects_future(bulk_mapping):
    with ImportController() as controller:
        with patch.object(controller._ctx, "Process", side_effect=OSError("no processes left")):
            future = controller.start([], bulk_mapping, "bulk")
        with pytest.raises(WorkerCrashedError, match="no processes left"):
            future.result(timeout=1)


def test_failing_progress_callback_does_not_block_settlement(make_bulk_rows, bulk_mapping, bulk_shelves):
    calls: list[int] = []

    def failing_callback(progress: ImportProgress) -> None:
        calls.append(progress.processed)
        raise RuntimeError("display failed")

    with ImportController(chunk_size=10, on_progress=failing_callback) as controller:
        future = controller.start(make_bulk_rows(50), bulk_mapping, "bulk", bulk_shelves)
        result = future.result(timeout=RESULT_TIMEOUT)
        assert result.stats.total_processed == 50
        assert calls == [10, 20, 30, 40, 50]
        assert controller.is_processing is False
        assert controller.last_error is None


def test_dispose_rejects_pending_run(make_bulk_rows, bulk_mapping, bulk_shelves):
    controller = ImportController(chunk_size=10)
    future = controller.start(make_bulk_rows(50000), bulk_mapping, "bulk", bulk_shelves)
    controller.dispose()
    with pytest.raises(ImportCancelledError):
        future.result(timeout=RESULT_TIMEOUT)
    with pytest.raises(RuntimeError):
        controller.start([], bulk_mapping, "bulk")


def test_negative_grace_rejected():
    with pytest.raises(ValueError):
        ImportController(cancel_grace_seconds=-1)
