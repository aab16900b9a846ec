"""
Abstract ingestion adapter interface.

Every adapter turns an arbitrary, adapter-specific input into file
descriptors and knows how to validate, name and transfer each of them into
the archive. The orchestrator drives these four operations; adapters never
decide batch policy themselves.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Iterator, List, Mapping, Optional, Union

from archive_core.config import IngestConfig, get_config
from archive_core.ingest.destination import DestinationNamer
from archive_core.ingest.errors import InvalidFileError, ParseError, TransferError
from shared.schema import FileDescriptor, IngestOptions, TargetEntity

logger = logging.getLogger(__name__)

# Attempts at claiming a fresh name when another writer races us to it.
_MAX_CLAIM_ATTEMPTS = 5

_COPY_CHUNK = 1024 * 1024


class IngestionAdapter(ABC):
    """Base class for ingestion adapters.

    An adapter is bound to one target entity and one set of options at
    construction. Neither can be reassigned afterwards.

    Subclasses implement:
        - parse(raw_input) -> List[FileDescriptor]
        - validate(descriptor) -> None, raising InvalidFileError
        - get_original_filename(descriptor) -> str
        - transfer(descriptor, original_filename) -> Optional[str]
    """

    name: str = "Abstract"

    def __init__(
        self,
        target: TargetEntity,
        options: Union[IngestOptions, Mapping[str, Any], None] = None,
        config: Optional[IngestConfig] = None,
    ) -> None:
        if not isinstance(target, TargetEntity):
            raise TypeError(f"target must be a TargetEntity, got {type(target).__name__}")
        if options is None:
            options = IngestOptions()
        elif not isinstance(options, IngestOptions):
            options = IngestOptions.model_validate(dict(options))
        self._target = target
        self._options = options
        self._config = config or get_config()
        self._namer = DestinationNamer(self._config.archive_path())

    @property
    def target(self) -> TargetEntity:
        return self._target

    @property
    def options(self) -> IngestOptions:
        return self._options

    @property
    def config(self) -> IngestConfig:
        return self._config

    @property
    def namer(self) -> DestinationNamer:
        return self._namer

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def parse(self, raw_input: Any) -> List[FileDescriptor]:
        """Interpret *raw_input* as zero or more file descriptors.

        Raises
        ------
        ParseError
            If this adapter cannot interpret the input at all.
        """
        ...

    @abstractmethod
    def validate(self, descriptor: FileDescriptor) -> None:
        """Raise InvalidFileError if *descriptor* must not be ingested."""
        ...

    @abstractmethod
    def get_original_filename(self, descriptor: FileDescriptor) -> str:
        """Stable, non-empty display name; also seeds the archive filename."""
        ...

    @abstractmethod
    def transfer(self, descriptor: FileDescriptor, original_filename: str) -> Optional[str]:
        """Copy the file's bytes into the archive.

        Returns
        -------
        Absolute path of the archive copy, or None to skip the file silently.

        Raises
        ------
        TransferError
            On any I/O failure (ArchiveUnwritableError included).
        """
        ...

    # ------------------------------------------------------------------
    # Helpers shared by concrete adapters
    # ------------------------------------------------------------------

    def _descriptors_from(self, raw_input: Any, accepts: tuple = (str,)) -> List[FileDescriptor]:
        """Normalise the common input shapes into descriptors.

        Accepted: a single source, a mapping with a ``source`` key (and
        optional ``name`` / ``metadata``), or a list/tuple mixing both.
        """
        if isinstance(raw_input, (list, tuple)):
            entries = list(raw_input)
        else:
            entries = [raw_input]

        descriptors: List[FileDescriptor] = []
        for position, entry in enumerate(entries):
            if isinstance(entry, Mapping):
                if "source" not in entry:
                    raise ParseError(f"{self.name}: entry {position} has no 'source' key")
                source = entry["source"]
                if not isinstance(source, accepts):
                    raise ParseError(f"{self.name}: entry {position} has an unusable source")
                try:
                    descriptors.append(
                        FileDescriptor(
                            source=str(source),
                            name=entry.get("name"),
                            metadata=entry.get("metadata"),
                        )
                    )
                except ValueError as exc:
                    raise ParseError(f"{self.name}: entry {position}: {exc}") from exc
            elif isinstance(entry, accepts):
                descriptors.append(FileDescriptor(source=str(entry)))
            else:
                raise ParseError(
                    f"{self.name}: cannot interpret entry {position} of type {type(entry).__name__}"
                )
        return descriptors

    def _check_extension(self, descriptor: FileDescriptor, filename: str) -> None:
        allowed = self._config.extension_allowlist()
        if not allowed:
            return
        ext = os.path.splitext(filename)[1].lower().lstrip(".")
        if ext not in allowed:
            raise InvalidFileError(
                f"File extension '{ext or '(none)'}' is not allowed; expected one of: {', '.join(allowed)}",
                source=descriptor.source,
            )

    def _check_size(self, descriptor: FileDescriptor, size: int) -> None:
        limit = self._config.max_file_size
        if limit and size > limit:
            raise InvalidFileError(
                f"File is {size} bytes, larger than the {limit} byte limit",
                source=descriptor.source,
            )

    def _write_to_archive(
        self,
        descriptor: FileDescriptor,
        original_filename: str,
        chunks: Iterable[bytes],
    ) -> Optional[str]:
        """Write *chunks* to a fresh archive path.

        Returns the absolute path, or None when nothing was written. A partially
        written file is removed before any exception propagates; OSError
        is raised as TransferError.
        """
        path = self._claim_destination(descriptor, original_filename)
        written = 0
        try:
            with open(path, "wb") as fh:
                for chunk in chunks:
                    fh.write(chunk)
                    written += len(chunk)
        except OSError as exc:
            _discard(path)
            raise TransferError(f"Could not write {path.name}: {exc}", source=descriptor.source) from exc
        except BaseException:
            _discard(path)
            raise

        if written == 0:
            logger.info("Nothing transferred for %s, skipping", descriptor.source)
            _discard(path)
            return None
        logger.debug("Transferred %s -> %s (%d bytes)", descriptor.source, path, written)
        return str(path.resolve())

    def _claim_destination(self, descriptor: FileDescriptor, original_filename: str) -> Path:
        for _ in range(_MAX_CLAIM_ATTEMPTS):
            path = self._namer.destination(original_filename)
            try:
                # Exclusive create: losing a race to another process means retry.
                with open(path, "xb"):
                    pass
                return path
            except FileExistsError:
                logger.debug("Archive name %s taken concurrently, retrying", path.name)
            except OSError as exc:
                raise TransferError(f"Could not create {path}: {exc}", source=descriptor.source) from exc
        raise TransferError(
            f"Could not claim an archive filename after {_MAX_CLAIM_ATTEMPTS} attempts",
            source=descriptor.source,
        )


def read_chunks(fh: BinaryIO, size: int = _COPY_CHUNK) -> Iterator[bytes]:
    """Yield *fh* in fixed-size chunks until EOF."""
    while True:
        chunk = fh.read(size)
        if not chunk:
            return
        yield chunk


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
