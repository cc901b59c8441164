from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..csvfile.reader import CsvReadError, read_csv_rows
from ..errors import ImportCancelledError, ImportRunError, RequestError
from ..logging.init import log_summary, set_level, setup_logging
from ..logging.skip_log import SkipLogBuffer
from ..models.records import RunResult
from ..models.request import ImportMode
from ..services.column_mapping import detect_mode, suggest_mapping
from ..services.controller import ImportController
from ..services.progress import ProgressTracker
from ..services.summary import render_summary_line
from ..services.validation import validate_rows

"""CLI entrypoint.

Flow:
- Load ``.env`` and ``config/import.yml``
- Read the CSV, resolve the mode (flag > config > header detection)
- Load or suggest the column mapping, validate a sample of rows
- Run through :class:`ImportController` with a tqdm bar, write the result JSON
- Flush skipped rows to the skip log and print the SUMMARY line

Exit codes: 0 all rows imported, 2 some rows skipped, 1 fatal, 130 cancelled.
"""

__all__ = [
    "main",
    "EXIT_SUCCESS_ALL",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_FATAL",
    "EXIT_CANCELLED",
]

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1
EXIT_CANCELLED = 130


class CliInputError(Exception):
    """Raised for unusable mapping/shelves files."""


def _load_env_file(path: Path, override: bool = False) -> None:
    """Load .env using python-dotenv; existing environment variables win unless ``override``."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="shelf-import", description="CSV menu -> shelf assignment importer")
    p.add_argument("csv", type=Path, help="CSV file to import")
    p.add_argument("--mode", choices=[m.value for m in ImportMode], help="Menu mode (default: config, then header detection)")
    p.add_argument("--mapping", type=Path, help="YAML file mapping CSV columns to fields")
    p.add_argument("--shelves", type=Path, help="JSON file listing existing shelves [{id, name}, ...]")
    p.add_argument("--allow-create", action="store_true", default=None, help="Create shelves for unknown labels")
    p.add_argument("--output", type=Path, help="Write the result JSON here (default: stdout)")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config file path")
    p.add_argument("--no-validate", action="store_true", help="Skip pre-import validation")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _load_mapping(path: Path) -> dict[str, str]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise CliInputError(f"cannot read mapping {path}: {e}") from e
    if not isinstance(data, dict):
        raise CliInputError(f"mapping must be a YAML mapping of column -> field: {path}")
    return {str(k): "" if v is None else str(v) for k, v in data.items()}


def _load_shelves(path: Path) -> list[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CliInputError(f"cannot read shelves {path}: {e}") from e
    if isinstance(data, dict):
        data = data.get("shelves")
    if not isinstance(data, list):
        raise CliInputError(f"shelves must be a JSON list (or {{\"shelves\": [...]}}): {path}")
    return data


def _write_result(result: RunResult, output: Path | None) -> None:
    text = json.dumps(result.to_payload(), ensure_ascii=False, indent=2)
    if output is None:
        sys.stdout.write(text + "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None reads sys.argv; an explicit [] must not pick up the test runner's args.
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"))

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    set_level("DEBUG" if args.debug else cfg.log_level)
    logger.debug("debug mode enabled")

    try:
        headers, rows = read_csv_rows(args.csv)
    except CsvReadError as e:
        logger.error(f"csv: {e}")
        return EXIT_FATAL

    mode_value = args.mode or cfg.default_mode
    mode = ImportMode.parse(mode_value) if mode_value else detect_mode(headers)
    if mode is None:
        logger.error("cannot detect menu mode from headers; pass --mode bulk|prepackaged")
        return EXIT_FATAL

    try:
        if args.mapping is not None:
            mapping = _load_mapping(args.mapping)
        else:
            mapping = suggest_mapping(headers, mode)
            logger.info(f"suggested mapping: {mapping}")
        shelves = _load_shelves(args.shelves) if args.shelves is not None else []
    except CliInputError as e:
        logger.error(str(e))
        return EXIT_FATAL

    if not args.no_validate:
        problems = validate_rows(rows, mapping, mode)
        if problems:
            for problem in problems:
                logger.error(f"validation: {problem}")
            return EXIT_FATAL

    allow_create = cfg.allow_create_shelves if args.allow_create is None else args.allow_create
    logger.info(f"Importing {len(rows)} row(s) from {args.csv} mode={mode.value}")

    started = time.perf_counter()
    with ProgressTracker(len(rows)) as tracker, ImportController(
        chunk_size=cfg.chunk_size,
        id_pool_size=cfg.id_pool_size,
        cancel_grace_seconds=cfg.cancel_grace_seconds,
        start_method=cfg.start_method,
        log_level="DEBUG" if args.debug else "WARNING",
        on_progress=tracker.update,
    ) as controller:
        future = controller.start(rows, mapping, mode, shelves, allow_create)
        try:
            try:
                result = future.result()
            except KeyboardInterrupt:
                logger.warning("interrupted; cancelling import")
                controller.cancel()
                result = future.result()
        except ImportCancelledError as e:
            logger.error(f"import: {e}")
            return EXIT_CANCELLED
        except (ImportRunError, RequestError) as e:
            logger.error(f"import: {e}")
            return EXIT_FATAL
    elapsed = time.perf_counter() - started

    _write_result(result, args.output)
    if args.output is not None:
        logger.info(f"result written to {args.output}")

    skip_log = SkipLogBuffer(Path(cfg.logs_dir))
    skip_log.extend(result.skipped_rows)
    skip_path = skip_log.flush()
    if skip_path is not None:
        logger.warning(f"{len(result.skipped_rows)} row(s) skipped; see {skip_path}")

    summary_line = render_summary_line(result, elapsed)
    log_summary(summary_line[len("SUMMARY "):])

    if result.stats.total_skipped > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL
