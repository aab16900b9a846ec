from pathlib import Path

import pytest

from archive_core.ingest.errors import ArchiveUnwritableError, InvalidFileError, ParseError
from archive_core.ingest.filesystem import FilesystemAdapter
from shared.schema import FileDescriptor


@pytest.fixture
def adapter(target, config):
    return FilesystemAdapter(target, config=config)


def test_parse_accepts_single_path(adapter):
    descriptors = adapter.parse("/tmp/a.jpg")
    assert [d.source for d in descriptors] == ["/tmp/a.jpg"]
    assert descriptors[0].metadata == {}


def test_parse_accepts_path_objects_and_mappings(adapter):
    descriptors = adapter.parse(
        [
            Path("/tmp/a.jpg"),
            {"source": "/tmp/b.jpg", "name": "Back.jpg", "metadata": {"Title": "Back cover"}},
        ]
    )
    assert [d.source for d in descriptors] == ["/tmp/a.jpg", "/tmp/b.jpg"]
    assert descriptors[1].name == "Back.jpg"
    assert descriptors[1].metadata == {"Title": ["Back cover"]}


def test_parse_empty_list_yields_no_descriptors(adapter):
    assert adapter.parse([]) == []


@pytest.mark.parametrize("raw", [None, 42, [{"name": "x.jpg"}], [""], [{"source": "/a", "metadata": "x"}]])
def test_parse_rejects_uninterpretable_input(adapter, raw):
    with pytest.raises(ParseError):
        adapter.parse(raw)


def test_validate_accepts_regular_file(adapter, make_file):
    adapter.validate(FileDescriptor(source=str(make_file("a.jpg"))))


def test_validate_rejects_missing_file(adapter, tmp_path):
    with pytest.raises(InvalidFileError, match="does not exist"):
        adapter.validate(FileDescriptor(source=str(tmp_path / "missing.jpg")))


def test_validate_rejects_directory(adapter, tmp_path):
    with pytest.raises(InvalidFileError, match="Not a regular file"):
        adapter.validate(FileDescriptor(source=str(tmp_path)))


def test_validate_rejects_empty_file(adapter, make_file):
    with pytest.raises(InvalidFileError, match="empty"):
        adapter.validate(FileDescriptor(source=str(make_file("empty.jpg", b""))))


def test_validate_applies_extension_allowlist(target, config, make_file):
    config = config.model_copy(update={"allowed_extensions": "jpg, PNG"})
    adapter = FilesystemAdapter(target, config=config)

    adapter.validate(FileDescriptor(source=str(make_file("a.JPG"))))
    adapter.validate(FileDescriptor(source=str(make_file("b.png"))))
    with pytest.raises(InvalidFileError, match="'exe' is not allowed"):
        adapter.validate(FileDescriptor(source=str(make_file("c.exe"))))
    # The explicit name is what gets checked.
    with pytest.raises(InvalidFileError):
        adapter.validate(FileDescriptor(source=str(make_file("d.jpg")), name="d.txt"))


def test_validate_applies_size_limit(target, config, make_file):
    config = config.model_copy(update={"max_file_size": 4})
    adapter = FilesystemAdapter(target, config=config)

    adapter.validate(FileDescriptor(source=str(make_file("small.txt", b"1234"))))
    with pytest.raises(InvalidFileError, match="larger than the 4 byte limit"):
        adapter.validate(FileDescriptor(source=str(make_file("big.txt", b"12345"))))


def test_original_filename(adapter):
    assert adapter.get_original_filename(FileDescriptor(source="/data/scans/a.jpg")) == "a.jpg"
    assert adapter.get_original_filename(FileDescriptor(source="/data/a.jpg", name="Front.jpg")) == "Front.jpg"


def test_transfer_copies_bytes(adapter, make_file, archive_dir):
    source = make_file("a.jpg", b"\x89binary\x00data")
    path = adapter.transfer(FileDescriptor(source=str(source)), "a.jpg")

    assert Path(path).parent == archive_dir.resolve()
    assert Path(path).read_bytes() == b"\x89binary\x00data"
    assert source.exists()


def test_transfer_uses_sanitised_collision_free_name(adapter, make_file, archive_dir):
    source = make_file("a.jpg")
    first = adapter.transfer(FileDescriptor(source=str(source)), "Front Cover.jpg")
    second = adapter.transfer(FileDescriptor(source=str(source)), "Front Cover.jpg")

    assert Path(first).name == "Front-Cover.jpg"
    assert Path(second).name == "Front-Cover_1.jpg"


def test_transfer_into_unwritable_archive(target, config, make_file, tmp_path):
    config = config.model_copy(update={"archive_dir": str(tmp_path / "gone")})
    adapter = FilesystemAdapter(target, config=config)
    with pytest.raises(ArchiveUnwritableError):
        adapter.transfer(FileDescriptor(source=str(make_file("a.jpg"))), "a.jpg")
