import io
from pathlib import Path
from types import SimpleNamespace
from typing import Any, List

import httpx
import pytest

from archive_core.hooks.registry import AFTER_FILE_INGESTED
from archive_core.ingest.base import IngestionAdapter
from archive_core.ingest.errors import (
    ArchiveUnwritableError,
    InvalidFileError,
    ParseError,
    PersistenceError,
    TransferError,
    UnknownAdapterError,
)
from archive_core.ingest.orchestrator import IngestOrchestrator, ingest_files
from archive_core.ingest.registry import create_adapter
from archive_core.records.store import SQLiteRecordStore
from shared.schema import FileDescriptor


class _ScriptedAdapter(IngestionAdapter):
    """Behaviour is chosen by the source prefix: ok-, invalid-, broken-, empty-."""

    name = "Scripted"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.validated: List[str] = []
        self.transferred: List[str] = []

    def parse(self, raw_input: Any) -> List[FileDescriptor]:
        return self._descriptors_from(raw_input)

    def validate(self, descriptor: FileDescriptor) -> None:
        self.validated.append(descriptor.source)
        if descriptor.source.startswith("invalid-"):
            raise InvalidFileError("bad extension", source=descriptor.source)

    def get_original_filename(self, descriptor: FileDescriptor) -> str:
        return descriptor.name or descriptor.source

    def transfer(self, descriptor: FileDescriptor, original_filename: str):
        self.transferred.append(descriptor.source)
        if descriptor.source.startswith("broken-"):
            raise TransferError("disk full", source=descriptor.source)
        if descriptor.source.startswith("empty-"):
            return None
        return self._write_to_archive(descriptor, original_filename, [descriptor.source.encode()])


class _FlakyStore(SQLiteRecordStore):
    """Fails the n-th create_record call with *error*."""

    def __init__(self, error: Exception, fail_on: int = 1) -> None:
        super().__init__(":memory:")
        self.error = error
        self.fail_on = fail_on
        self.calls = 0

    def create_record(self, *args: Any):
        self.calls += 1
        if self.calls == self.fail_on:
            raise self.error
        return super().create_record(*args)


def _archive_names(archive_dir: Path) -> List[str]:
    return sorted(p.name for p in archive_dir.iterdir())


def _scripted(target, config, ignore: bool = False) -> _ScriptedAdapter:
    return _ScriptedAdapter(target, {"ignore_invalid_files": ignore}, config=config)


# ---------------------------------------------------------------------------
# Order, skip and fail-fast semantics
# ---------------------------------------------------------------------------


def test_records_follow_input_order(target, config, store, hook_registry):
    adapter = _scripted(target, config)
    sources = ["ok-c.txt", "ok-a.txt", "ok-b.txt"]

    records = IngestOrchestrator(adapter, store, hook_registry).ingest(sources)

    assert [r.original_filename for r in records] == sources
    assert [r.id for r in records] == sorted(r.id for r in records)
    assert all(Path(r.archive_path).exists() for r in records)
    assert store.count() == 3


def test_zero_files_is_not_an_error(target, config, store, hook_registry):
    assert IngestOrchestrator(_scripted(target, config), store, hook_registry).ingest([]) == []


def test_record_carries_metadata_and_defaults(target, config, store, hook_registry):
    adapter = _scripted(target, config)
    raw = [{"source": "ok-a.txt", "name": "Front.txt", "metadata": {"Title": "Front", "Subject": ["x", "y"]}}]

    (record,) = IngestOrchestrator(adapter, store, hook_registry).ingest(raw)

    assert record.original_filename == "Front.txt"
    assert record.archive_filename == "Front.txt"
    assert record.metadata == {"Title": ["Front"], "Subject": ["x", "y"]}
    assert record.size == len(b"ok-a.txt")
    assert record.mime_type == "text/plain"
    assert record.target_id == str(target.id)
    assert store.get(record.id).metadata == record.metadata


def test_ignore_flag_skips_invalid_file(target, config, store, hook_registry, archive_dir):
    adapter = _scripted(target, config, ignore=True)

    report = IngestOrchestrator(adapter, store, hook_registry).ingest_report(
        ["ok-a.txt", "invalid-b.txt", "ok-c.txt"]
    )

    assert [r.original_filename for r in report.records] == ["ok-a.txt", "ok-c.txt"]
    assert "invalid-b.txt" not in adapter.transferred
    assert _archive_names(archive_dir) == ["ok-a.txt", "ok-c.txt"]
    (skipped,) = report.skipped
    assert skipped.index == 1
    assert skipped.error_kind == "invalid_file"
    assert skipped.reason == "bad extension"


def test_ignore_flag_skips_transfer_failure(target, config, store, hook_registry, archive_dir):
    adapter = _scripted(target, config, ignore=True)

    report = IngestOrchestrator(adapter, store, hook_registry).ingest_report(["broken-a.txt", "ok-b.txt"])

    assert [r.original_filename for r in report.records] == ["ok-b.txt"]
    assert report.skipped[0].error_kind == "transfer_error"
    assert _archive_names(archive_dir) == ["ok-b.txt"]


def test_fail_fast_keeps_earlier_records(target, config, store, hook_registry, archive_dir):
    adapter = _scripted(target, config)

    with pytest.raises(InvalidFileError, match="bad extension"):
        IngestOrchestrator(adapter, store, hook_registry).ingest(["ok-a.txt", "invalid-b.txt", "ok-c.txt"])

    # Later descriptors are never touched.
    assert adapter.validated == ["ok-a.txt", "invalid-b.txt"]
    assert adapter.transferred == ["ok-a.txt"]
    # Earlier successes stay, with their archive files.
    assert store.count() == 1
    assert _archive_names(archive_dir) == ["ok-a.txt"]


def test_fail_fast_on_transfer_failure(target, config, store, hook_registry):
    adapter = _scripted(target, config)

    with pytest.raises(TransferError, match="disk full"):
        IngestOrchestrator(adapter, store, hook_registry).ingest(["broken-a.txt", "ok-b.txt"])
    assert adapter.transferred == ["broken-a.txt"]
    assert store.count() == 0


def test_empty_transfer_is_skipped_silently(target, config, store, hook_registry, archive_dir):
    adapter = _scripted(target, config)

    report = IngestOrchestrator(adapter, store, hook_registry).ingest_report(["empty-a.txt", "ok-b.txt"])

    assert [r.original_filename for r in report.records] == ["ok-b.txt"]
    assert report.skipped[0].error_kind is None
    assert _archive_names(archive_dir) == ["ok-b.txt"]


def test_parse_error_always_propagates(target, config, store, hook_registry):
    adapter = _scripted(target, config, ignore=True)
    with pytest.raises(ParseError):
        IngestOrchestrator(adapter, store, hook_registry).ingest([{"no": "source"}])
    assert adapter.validated == []


# ---------------------------------------------------------------------------
# Archive naming and writability
# ---------------------------------------------------------------------------


def test_identical_names_get_distinct_archive_paths(target, config, store, hook_registry, make_file):
    first = make_file("scan.jpg", b"first", subdir="box1")
    second = make_file("scan.jpg", b"second", subdir="box2")
    adapter = create_adapter("LocalPath", target, config=config)

    records = IngestOrchestrator(adapter, store, hook_registry).ingest([str(first), str(second)])

    assert [r.original_filename for r in records] == ["scan.jpg", "scan.jpg"]
    assert records[0].archive_path != records[1].archive_path
    assert [r.archive_filename for r in records] == ["scan.jpg", "scan_1.jpg"]
    assert Path(records[1].archive_path).read_bytes() == b"second"


def _unwritable_inputs(make_file):
    url = "https://example.com/a.jpg"
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"x")))
    return [
        ("Filesystem", [str(make_file("a.jpg"))], {}),
        ("Url", [url], {"client": client}),
        ("Upload", [SimpleNamespace(filename="a.jpg", file=io.BytesIO(b"x"), size=None)], {}),
    ]


def test_unwritable_archive_fails_every_adapter(target, config, store, hook_registry, make_file, tmp_path):
    config = config.model_copy(update={"archive_dir": str(tmp_path / "not-there")})
    for name, raw, kwargs in _unwritable_inputs(make_file):
        adapter = create_adapter(name, target, config=config, **kwargs)
        with pytest.raises(ArchiveUnwritableError):
            IngestOrchestrator(adapter, store, hook_registry).ingest(raw)
    assert store.count() == 0


def test_unwritable_archive_is_skippable(target, config, store, hook_registry, make_file, tmp_path):
    config = config.model_copy(update={"archive_dir": str(tmp_path / "not-there")})
    for name, raw, kwargs in _unwritable_inputs(make_file):
        adapter = create_adapter(name, target, {"ignore_invalid_files": True}, config=config, **kwargs)
        report = IngestOrchestrator(adapter, store, hook_registry).ingest_report(raw)
        assert report.records == []
        assert report.skipped[0].error_kind == "archive_unwritable"


# ---------------------------------------------------------------------------
# Persistence failures
# ---------------------------------------------------------------------------


def test_persistence_failure_removes_archive_copy(target, config, hook_registry, archive_dir):
    store = _FlakyStore(PersistenceError("database is locked"), fail_on=2)
    adapter = _scripted(target, config)

    with pytest.raises(PersistenceError, match="database is locked"):
        IngestOrchestrator(adapter, store, hook_registry).ingest(["ok-a.txt", "ok-b.txt", "ok-c.txt"])

    assert _archive_names(archive_dir) == ["ok-a.txt"]
    assert store.count() == 1
    assert adapter.transferred == ["ok-a.txt", "ok-b.txt"]


def test_persistence_failure_ignores_ignore_flag(target, config, hook_registry, archive_dir):
    store = _FlakyStore(PersistenceError("disk I/O error"))
    adapter = _scripted(target, config, ignore=True)

    with pytest.raises(PersistenceError):
        IngestOrchestrator(adapter, store, hook_registry).ingest(["ok-a.txt", "ok-b.txt"])
    assert _archive_names(archive_dir) == []


def test_foreign_store_errors_become_persistence_errors(target, config, hook_registry, archive_dir):
    store = _FlakyStore(RuntimeError("connection reset"))

    with pytest.raises(PersistenceError, match="connection reset") as excinfo:
        IngestOrchestrator(_scripted(target, config), store, hook_registry).ingest(["ok-a.txt"])

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert _archive_names(archive_dir) == []


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


def test_hook_fires_once_per_record(target, config, store, hook_registry):
    seen = []
    hook_registry.add(AFTER_FILE_INGESTED, lambda record, entity: seen.append((record.original_filename, entity)))

    IngestOrchestrator(_scripted(target, config, ignore=True), store, hook_registry).ingest(
        ["ok-a.txt", "invalid-b.txt", "ok-c.txt"]
    )

    assert seen == [("ok-a.txt", target), ("ok-c.txt", target)]


def test_failing_hook_does_not_affect_ingestion(target, config, store, hook_registry):
    def _explode(record, entity):
        raise RuntimeError("derivative queue down")

    hook_registry.add(AFTER_FILE_INGESTED, _explode)

    records = IngestOrchestrator(_scripted(target, config), store, hook_registry).ingest(["ok-a.txt"])

    assert len(records) == 1
    assert Path(records[0].archive_path).exists()
    assert store.count() == 1


# ---------------------------------------------------------------------------
# LocalPath scenarios
# ---------------------------------------------------------------------------


def test_local_path_scenario_with_ignore(target, config, store, hook_registry, make_file, archive_dir, tmp_path):
    existing = make_file("a.jpg")
    missing = tmp_path / "missing.jpg"

    records = ingest_files(
        "LocalPath",
        target,
        [str(existing), str(missing)],
        store,
        options={"ignore_invalid_files": True},
        config=config,
        hooks=hook_registry,
    ).records

    assert [r.original_filename for r in records] == ["a.jpg"]
    assert _archive_names(archive_dir) == ["a.jpg"]


def test_local_path_scenario_fail_fast(target, config, store, hook_registry, make_file, archive_dir, tmp_path):
    existing = make_file("a.jpg")
    missing = tmp_path / "missing.jpg"

    with pytest.raises(InvalidFileError, match="does not exist"):
        ingest_files(
            "LocalPath", target, [str(existing), str(missing)], store, config=config, hooks=hook_registry
        )

    # a.jpg was ingested before missing.jpg was reached, and is kept.
    assert [r.original_filename for r in store.list_for_target(target)] == ["a.jpg"]
    assert _archive_names(archive_dir) == ["a.jpg"]


def test_unknown_adapter_always_propagates(target, config, store):
    with pytest.raises(UnknownAdapterError):
        ingest_files("Ftp", target, [], store, options={"ignore_invalid_files": True}, config=config)
