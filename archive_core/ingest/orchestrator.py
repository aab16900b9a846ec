"""
Ingest orchestrator.

Drives one adapter through parse -> validate -> transfer -> record creation
for every file in a batch, applies the ignore-invalid-files policy and keeps
the archive directory and the record store in step.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from archive_core.config import IngestConfig
from archive_core.hooks.registry import AFTER_FILE_INGESTED, HookRegistry, hooks as default_hooks
from archive_core.ingest.base import IngestionAdapter
from archive_core.ingest.errors import IngestError, PersistenceError, SKIPPABLE_ERRORS
from archive_core.ingest.registry import create_adapter
from archive_core.records.store import RecordStore
from shared.schema import (
    FileDescriptor,
    FileRecord,
    IngestOptions,
    IngestReport,
    ItemResult,
    TargetEntity,
    TransferredFile,
)

logger = logging.getLogger(__name__)


class IngestOrchestrator:
    """Ingest files through *adapter* into *store*.

    Usage::

        adapter = create_adapter("Url", TargetEntity(id=12))
        records = IngestOrchestrator(adapter, store).ingest("http://www.example.com/a.jpg")
    """

    def __init__(
        self,
        adapter: IngestionAdapter,
        store: RecordStore,
        hooks: Optional[HookRegistry] = None,
    ) -> None:
        self.adapter = adapter
        self.store = store
        self.hooks = hooks if hooks is not None else default_hooks

    def ingest(self, raw_input: Any) -> List[FileRecord]:
        """Ingest every file *raw_input* describes.

        Returns the created records in input order, shorter than the input
        when files were skipped.

        Raises
        ------
        ParseError
            If the adapter cannot interpret *raw_input*.
        InvalidFileError, TransferError
            For the first failing file, unless ``ignore_invalid_files`` is set.
            Records created before the failure are kept.
        PersistenceError
            If a record cannot be saved. The archive copy is removed first.
        """
        return self.ingest_report(raw_input).records

    def ingest_report(self, raw_input: Any) -> IngestReport:
        """Like ingest(), but also reports why each skipped file was skipped."""
        descriptors = self.adapter.parse(raw_input)
        ignore = self.adapter.options.ignore_invalid_files
        target = self.adapter.target

        report = IngestReport(adapter=self.adapter.name, target=target)
        logger.info(
            "Ingesting %d file(s) via %s for %s %s", len(descriptors), self.adapter.name, target.kind, target.id
        )

        for index, descriptor in enumerate(descriptors):
            result, failure = self._process(index, descriptor)
            if failure is not None:
                if not ignore:
                    logger.warning(
                        "Aborting batch at file #%d (%s): %s; %d earlier record(s) kept",
                        index, descriptor.source, failure, len(report.records),
                    )
                    raise failure
                logger.info("Skipping invalid file #%d (%s): %s", index, descriptor.source, failure)
            if result.record is not None:
                report.records.append(result.record)
            report.results.append(result)

        return report

    # ------------------------------------------------------------------
    # Per-file steps
    # ------------------------------------------------------------------

    def _process(self, index: int, descriptor: FileDescriptor) -> Tuple[ItemResult, Optional[IngestError]]:
        """Run one file through the pipeline.

        Per-file failures come back as values; the caller decides whether
        they abort the batch.
        """
        _, failure = _attempt(self.adapter.validate, descriptor)
        if failure is not None:
            return _skipped(index, descriptor, failure), failure

        original_filename = self.adapter.get_original_filename(descriptor)

        path, failure = _attempt(self.adapter.transfer, descriptor, original_filename)
        if failure is not None:
            return _skipped(index, descriptor, failure), failure
        if not path:
            return ItemResult(
                index=index, source=descriptor.source, status="skipped", reason="Nothing was transferred"
            ), None

        transferred = TransferredFile(
            archive_path=path, original_filename=original_filename, metadata=descriptor.metadata
        )
        record = self._create_record(transferred)
        return ItemResult(index=index, source=descriptor.source, status="ingested", record=record), None

    def _create_record(self, transferred: TransferredFile) -> FileRecord:
        target = self.adapter.target
        try:
            record = self.store.create_record(
                transferred.archive_path,
                transferred.original_filename,
                transferred.metadata or None,
                target,
            )
        except Exception as exc:
            _remove_archive_copy(transferred.archive_path)
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(
                f"Could not create file record: {exc}", source=transferred.archive_path
            ) from exc

        logger.info(
            "Ingested '%s' as %s (record %s)", record.original_filename, record.archive_filename, record.id
        )
        self.hooks.fire(AFTER_FILE_INGESTED, record, target)
        return record


def _attempt(step: Callable[..., Any], *args: Any) -> Tuple[Any, Optional[IngestError]]:
    """Call *step*, returning ``(value, None)`` or ``(None, per-file failure)``."""
    try:
        return step(*args), None
    except SKIPPABLE_ERRORS as exc:
        return None, exc


def _skipped(index: int, descriptor: FileDescriptor, failure: IngestError) -> ItemResult:
    return ItemResult(
        index=index,
        source=descriptor.source,
        status="skipped",
        error_kind=failure.kind,
        reason=failure.message,
    )


def _remove_archive_copy(archive_path: str) -> None:
    try:
        Path(archive_path).unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.exception("Could not remove orphaned archive file %s", archive_path)
        return
    logger.info("Removed archive file %s after failed record creation", archive_path)


def ingest_files(
    adapter_name: str,
    target: TargetEntity,
    raw_input: Any,
    store: RecordStore,
    options: Union[IngestOptions, Mapping[str, Any], None] = None,
    config: Optional[IngestConfig] = None,
    hooks: Optional[HookRegistry] = None,
    **adapter_kwargs: Any,
) -> IngestReport:
    """Build the named adapter and run one ingestion through it."""
    adapter = create_adapter(adapter_name, target, options, config=config, **adapter_kwargs)
    return IngestOrchestrator(adapter, store, hooks=hooks).ingest_report(raw_input)
