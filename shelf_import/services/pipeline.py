from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..models.messages import CompleteMessage, ErrorMessage, OutboundMessage, ProgressMessage
from ..models.records import ImportStats, Product, Record, RunResult, SkippedRow, Strain
from ..models.request import ImportMode, ImportRequest
from .column_mapping import invert_mapping, lookup
from .destinations import DestinationResolver, is_shake
from .id_pool import DEFAULT_POOL_SIZE, IdPool
from .normalizers import (
    LAST_JAR_VALUES,
    LOW_STOCK_VALUES,
    SOLD_OUT_VALUES,
    extract_numeric,
    normalize_strain_type,
    parse_boolean_field,
    parse_price,
)

"""Chunked execution loop for one import run.

Rows are processed in fixed-size chunks. A chunk runs to completion without
interruption; after it the loop emits PROGRESS and calls the yield point, which
is the only place a pending CANCEL can be observed. Cancellation is checked at
the start of every chunk.

Per-row failures never abort the run: they are recorded as skipped rows with a
diagnostic reason. Anything raised outside the per-row scope propagates to the
caller (the worker turns it into the run's ERROR message).
"""

__all__ = [
    "ImportSession",
    "run_import",
    "build_record",
    "DEFAULT_CHUNK_SIZE",
    "HEADER_ROW_OFFSET",
]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100
# Data row i (0-based) is line i + 2 of the file: 1-based numbering plus the header line.
HEADER_ROW_OFFSET = 2

Emit = Callable[[OutboundMessage], None]


@dataclass
class ImportSession:
    """Worker-owned state for the run in flight: cancellation flag and id pool.

    One session belongs to one worker; the controller guarantees a single run
    at a time, so no locking is needed.
    """
    id_pool: IdPool = field(default_factory=lambda: IdPool(DEFAULT_POOL_SIZE))
    cancelled: bool = False

    def request_cancel(self) -> None:
        self.cancelled = True

    def reset(self) -> None:
        self.cancelled = False
        self.id_pool.reset()


def _default_yield() -> None:
    time.sleep(0)


def build_record(
    row: dict[str, str],
    field_mapping: dict[str, str],
    mode: ImportMode,
    id_pool: IdPool,
    item_name: str,
) -> Record:
    """Normalize one row into a Strain (bulk) or Product (pre-packaged)."""
    def cell(name: str) -> str:
        return lookup(row, field_mapping, name)

    if mode is ImportMode.BULK:
        return Strain(
            id=id_pool.get(),
            name=item_name,
            grower=cell("grower"),
            thc=extract_numeric(cell("thc")),
            type=normalize_strain_type(cell("type")),
            is_last_jar=parse_boolean_field(cell("lastJar"), LAST_JAR_VALUES),
            is_sold_out=parse_boolean_field(cell("soldOut"), SOLD_OUT_VALUES),
            original_shelf=cell("originalShelf"),
        )
    return Product(
        id=id_pool.get(),
        name=item_name,
        brand=cell("brand"),
        thc=extract_numeric(cell("thc")),
        terpenes=extract_numeric(cell("terpenes")),
        type=normalize_strain_type(cell("type")),
        price=parse_price(cell("price")),
        net_weight=cell("netWeight"),
        is_low_stock=parse_boolean_field(cell("isLowStock"), LOW_STOCK_VALUES),
        is_sold_out=parse_boolean_field(cell("soldOut"), SOLD_OUT_VALUES),
        notes=cell("notes"),
    )


def _missing_reason(shelf_label: str, item_name: str) -> str:
    parts = []
    if not shelf_label:
        parts.append("shelf/category")
    if not item_name:
        parts.append("item name")
    return "Missing required data: " + " and ".join(parts)


def _unresolved_reason(label: str, attempted: tuple[str, ...]) -> str:
    reason = f'Unknown shelf/category "{label}"'
    if len(attempted) > 1:
        tried = ", ".join(f'"{a}"' for a in attempted)
        reason += f" (tried {tried})"
    return reason


def run_import(
    request: ImportRequest,
    session: ImportSession,
    emit: Emit,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    yield_point: Callable[[], Any] | None = None,
) -> RunResult | None:
    """Run one import, emitting PROGRESS per chunk and one terminal message.

    Args:
        request: Validated import request
        session: Worker session (id pool + cancellation flag); reset here
        emit: Sink for outbound messages, called in emission order
        chunk_size: Rows per atomic chunk
        yield_point: Called after every chunk; the worker uses it to drain its
            control inbox. Defaults to a zero-length sleep.

    Returns:
        The RunResult (also emitted as COMPLETE), or None if the run was cancelled
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    yield_point = yield_point or _default_yield
    session.reset()

    mode = request.mode
    field_mapping = invert_mapping(request.column_mapping)
    resolver = DestinationResolver(
        request.existing_destinations,
        mode,
        session.id_pool,
        allow_create=request.allow_create_destinations,
    )

    shelf_assignments: dict[str, list[Record]] = {}
    skipped_rows: list[SkippedRow] = []
    total_processed = 0
    shake_count = 0
    flower_count = 0
    rows = request.rows
    total = len(rows)

    logger.info("import started mode=%s rows=%d chunk_size=%d", mode.value, total, chunk_size)

    for start in range(0, total, chunk_size):
        if session.cancelled:
            logger.info("import cancelled before row %d/%d", start + 1, total)
            emit(ErrorMessage.cancellation())
            return None

        end = min(start + chunk_size, total)
        for offset, row in enumerate(rows[start:end]):
            row_index = start + offset + HEADER_ROW_OFFSET
            try:
                shelf_label = lookup(row, field_mapping, "shelf")
                item_name = lookup(row, field_mapping, "name")
                if not shelf_label or not item_name:
                    skipped_rows.append(
                        SkippedRow(row_index, row, _missing_reason(shelf_label, item_name))
                    )
                    continue

                if mode is ImportMode.PREPACKAGED:
                    if is_shake(item_name):
                        shake_count += 1
                    else:
                        flower_count += 1

                resolution = resolver.resolve(shelf_label, item_name)
                if not resolution.resolved:
                    skipped_rows.append(
                        SkippedRow(row_index, row, _unresolved_reason(shelf_label, resolution.attempted))
                    )
                    continue

                record = build_record(row, field_mapping, mode, session.id_pool, item_name)
                shelf_assignments.setdefault(resolution.destination_id, []).append(record)
                total_processed += 1
            except Exception as e:
                logger.debug("row %d failed: %s", row_index, e, exc_info=True)
                skipped_rows.append(SkippedRow(row_index, row, f"Processing error: {e}"))

        emit(ProgressMessage(processed=end, total=total, stage=f"Processing rows {start + 1}-{end}..."))
        yield_point()

    is_prepackaged = mode is ImportMode.PREPACKAGED
    result = RunResult(
        shelf_assignments=shelf_assignments,
        created_shelves=list(resolver.created),
        skipped_rows=skipped_rows,
        stats=ImportStats(
            total_processed=total_processed,
            total_skipped=len(skipped_rows),
            shake_count=shake_count if is_prepackaged else None,
            flower_count=flower_count if is_prepackaged else None,
        ),
        mode=mode.value,
    )
    logger.info(
        "import finished processed=%d skipped=%d created_shelves=%d",
        total_processed,
        len(skipped_rows),
        len(result.created_shelves),
    )
    emit(CompleteMessage(result=result))
    return result
