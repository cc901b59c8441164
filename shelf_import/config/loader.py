from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML ``config/import.yml`` (a missing file means all defaults)
- Validate against the bundled ``config_schema.json``
- Apply defaults, then environment overrides (``SHELF_IMPORT_*``)

Environment variables are read from ``os.environ``; the CLI loads ``.env``
with python-dotenv before calling :func:`load_config`.
"""

__all__ = [
    "ConfigError",
    "ImportSettings",
    "load_config",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
]

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/import.yml")

ENV_CHUNK_SIZE = "SHELF_IMPORT_CHUNK_SIZE"
ENV_ID_POOL_SIZE = "SHELF_IMPORT_ID_POOL_SIZE"
ENV_CANCEL_GRACE = "SHELF_IMPORT_CANCEL_GRACE"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class ImportSettings:
    chunk_size: int = 100
    id_pool_size: int = 500
    cancel_grace_seconds: float = 0.1
    start_method: str = "spawn"
    default_mode: str | None = None
    allow_create_shelves: bool = False
    log_level: str = "INFO"
    logs_dir: str = "logs"


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _env_number(env: Mapping[str, str], name: str, cast: type, minimum: float) -> Any:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = cast(raw.strip())
    except ValueError as e:
        raise ConfigError(f"{name} must be a {cast.__name__}, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {raw!r}")
    return value


def load_config(path: Path = DEFAULT_CONFIG_PATH, env: Mapping[str, str] | None = None) -> ImportSettings:
    env = os.environ if env is None else env
    data: dict[str, Any] = {}
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid yaml: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"config root must be a mapping: {path}")
        data = loaded or {}
        _validate_config_schema(data)

    chunk_size = _env_number(env, ENV_CHUNK_SIZE, int, 1)
    id_pool_size = _env_number(env, ENV_ID_POOL_SIZE, int, 1)
    cancel_grace = _env_number(env, ENV_CANCEL_GRACE, float, 0)

    defaults = ImportSettings()
    return ImportSettings(
        chunk_size=chunk_size if chunk_size is not None else data.get("chunk_size", defaults.chunk_size),
        id_pool_size=id_pool_size if id_pool_size is not None else data.get("id_pool_size", defaults.id_pool_size),
        cancel_grace_seconds=float(
            cancel_grace if cancel_grace is not None
            else data.get("cancel_grace_seconds", defaults.cancel_grace_seconds)
        ),
        start_method=data.get("start_method", defaults.start_method),
        default_mode=data.get("default_mode", defaults.default_mode),
        allow_create_shelves=data.get("allow_create_shelves", defaults.allow_create_shelves),
        log_level=data.get("log_level", defaults.log_level),
        logs_dir=data.get("logs_dir", defaults.logs_dir),
    )
