"""
Upload ingestion adapter.

Moves files received through a multipart form (e.g. FastAPI ``UploadFile``)
into the archive.
"""

from __future__ import annotations

import os
import re
from typing import Any, List, Mapping, Optional

from archive_core.ingest.base import IngestionAdapter, read_chunks
from archive_core.ingest.errors import InvalidFileError, ParseError, TransferError
from shared.schema import FileDescriptor


def _is_upload(obj: Any) -> bool:
    return hasattr(obj, "filename") and hasattr(obj, "file")


class UploadAdapter(IngestionAdapter):
    """Ingest uploaded files.

    Input shapes:
        - an upload object exposing ``filename`` and ``file``;
        - ``{"file": upload, "name": ..., "metadata": ...}``;
        - a list of either;
        - a form mapping ``{field: upload | [upload, ...]}``.

    Form fields left empty (no file chosen) are dropped when
    ``ignore_no_file`` is set, otherwise they fail validation.
    """

    name = "Upload"

    def parse(self, raw_input: Any) -> List[FileDescriptor]:
        if raw_input is None:
            raise ParseError("Upload: no files given")

        labelled: List[tuple] = []
        if isinstance(raw_input, Mapping) and not _is_upload(raw_input.get("file")):
            for field, value in raw_input.items():
                if isinstance(value, (list, tuple)):
                    for i, entry in enumerate(value):
                        labelled.append((f"{field}[{i}]", entry))
                else:
                    labelled.append((str(field), value))
        elif isinstance(raw_input, (list, tuple)):
            labelled = [(f"upload[{i}]", entry) for i, entry in enumerate(raw_input)]
        else:
            labelled = [("upload[0]", raw_input)]

        descriptors: List[FileDescriptor] = []
        for label, entry in labelled:
            descriptor = self._descriptor_for(label, entry)
            if not descriptor.handle.filename and self.options.ignore_no_file:
                continue
            descriptors.append(descriptor)
        return descriptors

    def _descriptor_for(self, label: str, entry: Any) -> FileDescriptor:
        if isinstance(entry, Mapping):
            upload = entry.get("file")
            name = entry.get("name")
            metadata = entry.get("metadata")
        else:
            upload, name, metadata = entry, None, None
        if not _is_upload(upload):
            raise ParseError(f"Upload: '{label}' is not an uploaded file")
        try:
            return FileDescriptor(
                source=upload.filename or label,
                name=name,
                metadata=metadata,
                handle=upload,
            )
        except ValueError as exc:
            raise ParseError(f"Upload: '{label}': {exc}") from exc

    def validate(self, descriptor: FileDescriptor) -> None:
        upload = descriptor.handle
        if not upload.filename:
            raise InvalidFileError("No file was uploaded", source=descriptor.source)

        size = _upload_size(upload)
        if size == 0:
            raise InvalidFileError("File is empty", source=descriptor.source)
        if size is not None:
            self._check_size(descriptor, size)
        self._check_extension(descriptor, self.get_original_filename(descriptor))

    def get_original_filename(self, descriptor: FileDescriptor) -> str:
        if descriptor.name:
            return descriptor.name
        # Browsers may send full client-side paths.
        basename = re.split(r"[\\/]", descriptor.handle.filename or "")[-1]
        return basename or descriptor.source

    def transfer(self, descriptor: FileDescriptor, original_filename: str) -> Optional[str]:
        stream = descriptor.handle.file
        try:
            stream.seek(0)
        except (OSError, ValueError) as exc:
            raise TransferError(f"Upload stream is unusable: {exc}", source=descriptor.source) from exc
        return self._write_to_archive(descriptor, original_filename, read_chunks(stream))


def _upload_size(upload: Any) -> Optional[int]:
    size = getattr(upload, "size", None)
    if size is not None:
        return size
    stream = upload.file
    try:
        position = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(position)
    except (OSError, ValueError):
        return None
    return size
