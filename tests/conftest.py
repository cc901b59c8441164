# Shared pytest fixtures
from __future__ import annotations
import os
import tempfile
from pathlib import Path

import pytest

from shelf_import.logging.init import reset_logging
from shelf_import.models.records import DestinationDescriptor


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


ENV_OVERRIDES = ("SHELF_IMPORT_CHUNK_SIZE", "SHELF_IMPORT_ID_POOL_SIZE", "SHELF_IMPORT_CANCEL_GRACE")


@pytest.fixture(autouse=True)
def _clean_env():
    # .env files loaded by the CLI write straight into os.environ.
    for name in ENV_OVERRIDES:
        os.environ.pop(name, None)
    yield
    for name in ENV_OVERRIDES:
        os.environ.pop(name, None)


@pytest.fixture()
def fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """chunk_size: 50
id_pool_size: 100
cancel_grace_seconds: 0.5
start_method: spawn
allow_create_shelves: false
log_level: INFO
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def bulk_shelves() -> list[DestinationDescriptor]:
    return [
        DestinationDescriptor(id="top", name="Top Shelf"),
        DestinationDescriptor(id="mid", name="Mid Shelf"),
        DestinationDescriptor(id="value", name="Value Shelf"),
    ]


@pytest.fixture()
def prepackaged_shelves() -> list[DestinationDescriptor]:
    return [
        DestinationDescriptor(id="d1", name="3.5g Flower"),
        DestinationDescriptor(id="d2", name="3.5g Shake"),
        DestinationDescriptor(id="d3", name="7g Flower"),
    ]


@pytest.fixture()
def bulk_mapping() -> dict[str, str]:
    return {
        "Category": "shelf",
        "Strain": "name",
        "Grower": "grower",
        "THC": "thc",
        "Class": "type",
        "Last Jar": "lastJar",
        "Sold Out": "soldOut",
    }


def _bulk_rows(n: int, shelf: str = "Top Shelf") -> list[dict[str, str]]:
    return [
        {
            "Category": shelf,
            "Strain": f"Strain {i}",
            "Grower": "Acme",
            "THC": f"{20 + i % 10}.5%",
            "Class": "S" if i % 2 else "I",
            "Last Jar": "",
            "Sold Out": "",
        }
        for i in range(n)
    ]


@pytest.fixture()
def make_bulk_rows():
    return _bulk_rows


@pytest.fixture()
def write_csv(temp_workdir: Path):
    def _write(name: str, text: str) -> Path:
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write
