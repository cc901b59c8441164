from __future__ import annotations

from ..models.records import RunResult

"""SUMMARY line rendering for a finished import run."""

__all__ = [
    "render_summary_line",
    "format_number",
]


def format_number(value: float) -> str:
    """Render a metric without trailing zeros or scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(result: RunResult, elapsed_seconds: float) -> str:
    """Render the SUMMARY line for one run.

    Format::

        SUMMARY mode={mode} rows={total} imported={n} skipped={n} created_shelves={n}
        [shake={n} flower={n}] elapsed_sec={elapsed} throughput_rps={throughput}

    ``shake``/``flower`` appear only for pre-packaged runs.

    Examples:
        >>> from shelf_import.models.records import ImportStats
        >>> r = RunResult({}, [], [], ImportStats(total_processed=10, total_skipped=0))
        >>> render_summary_line(r, 2.0)
        'SUMMARY mode=bulk rows=10 imported=10 skipped=0 created_shelves=0 elapsed_sec=2 throughput_rps=5'
    """
    stats = result.stats
    total = stats.total_processed + stats.total_skipped
    throughput = stats.total_processed / elapsed_seconds if elapsed_seconds > 0 else 0.0

    parts = [
        "SUMMARY",
        f"mode={result.mode}",
        f"rows={total}",
        f"imported={stats.total_processed}",
        f"skipped={stats.total_skipped}",
        f"created_shelves={len(result.created_shelves)}",
    ]
    if stats.shake_count is not None:
        parts.append(f"shake={stats.shake_count}")
    if stats.flower_count is not None:
        parts.append(f"flower={stats.flower_count}")
    parts.append(f"elapsed_sec={format_number(elapsed_seconds)}")
    parts.append(f"throughput_rps={format_number(throughput)}")
    return " ".join(parts)
