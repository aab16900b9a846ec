"""
Error kinds raised by the ingestion core.

ParseError and UnknownAdapterError mean the request itself is unusable.
InvalidFileError and TransferError concern a single file and are subject to
the ``ignore_invalid_files`` policy. PersistenceError is never ignored.
"""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for every ingestion failure."""

    kind = "ingest_error"

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} (source: {self.source})"
        return self.message


class ParseError(IngestError):
    kind = "parse_error"


class InvalidFileError(IngestError):
    kind = "invalid_file"


class TransferError(IngestError):
    kind = "transfer_error"


class ArchiveUnwritableError(TransferError):
    kind = "archive_unwritable"


class UnknownAdapterError(IngestError):
    kind = "unknown_adapter"


class PersistenceError(IngestError):
    kind = "persistence_error"


# Per-file failures the ignore flag may skip.
SKIPPABLE_ERRORS = (InvalidFileError, TransferError)
