from pathlib import Path
from typing import Callable

import pytest

from archive_core.config import IngestConfig, reset_config
from archive_core.hooks.registry import HookRegistry
from archive_core.records.store import SQLiteRecordStore
from shared.schema import TargetEntity


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def archive_dir(tmp_path: Path) -> Path:
    path = tmp_path / "archive"
    path.mkdir()
    return path


@pytest.fixture
def config(archive_dir: Path, tmp_path: Path) -> IngestConfig:
    return IngestConfig(
        archive_dir=str(archive_dir),
        database_path=str(tmp_path / "archive.db"),
    )


@pytest.fixture
def store():
    store = SQLiteRecordStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def target() -> TargetEntity:
    return TargetEntity(id=1)


@pytest.fixture
def hook_registry() -> HookRegistry:
    return HookRegistry()


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[..., Path]:
    source_dir = tmp_path / "sources"
    source_dir.mkdir()

    def _make(name: str, content: bytes = b"file content", subdir: str = "") -> Path:
        folder = source_dir / subdir if subdir else source_dir
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        path.write_bytes(content)
        return path

    return _make
