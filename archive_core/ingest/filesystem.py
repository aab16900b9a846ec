"""
Filesystem ingestion adapter.

Copies files from local paths into the archive.
Registered as both ``Filesystem`` and ``LocalPath``.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePath
from typing import Any, List, Optional

from archive_core.ingest.base import IngestionAdapter, read_chunks
from archive_core.ingest.errors import InvalidFileError, ParseError, TransferError
from shared.schema import FileDescriptor


class FilesystemAdapter(IngestionAdapter):
    """Ingest files that already exist on the local filesystem.

    Input: a path, a ``{"source": path, "name": ..., "metadata": ...}``
    mapping, or a list of either.
    """

    name = "Filesystem"

    def parse(self, raw_input: Any) -> List[FileDescriptor]:
        if raw_input is None:
            raise ParseError("Filesystem: no paths given")
        descriptors = self._descriptors_from(raw_input, accepts=(str, PurePath))
        for descriptor in descriptors:
            if not descriptor.source.strip():
                raise ParseError("Filesystem: empty path")
        return descriptors

    def validate(self, descriptor: FileDescriptor) -> None:
        path = Path(descriptor.source)
        if not path.exists():
            raise InvalidFileError("File does not exist", source=descriptor.source)
        if not path.is_file():
            raise InvalidFileError("Not a regular file", source=descriptor.source)
        if not os.access(path, os.R_OK):
            raise InvalidFileError("File is not readable", source=descriptor.source)

        size = path.stat().st_size
        if size == 0:
            raise InvalidFileError("File is empty", source=descriptor.source)
        self._check_size(descriptor, size)
        self._check_extension(descriptor, self.get_original_filename(descriptor))

    def get_original_filename(self, descriptor: FileDescriptor) -> str:
        if descriptor.name:
            return descriptor.name
        return Path(descriptor.source).name or descriptor.source

    def transfer(self, descriptor: FileDescriptor, original_filename: str) -> Optional[str]:
        try:
            fh = open(descriptor.source, "rb")
        except OSError as exc:
            raise TransferError(f"Cannot open source file: {exc}", source=descriptor.source) from exc
        with fh:
            return self._write_to_archive(descriptor, original_filename, read_chunks(fh))
