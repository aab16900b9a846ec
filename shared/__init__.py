from shared.schema import (
    FileDescriptor,
    FileRecord,
    IngestOptions,
    IngestReport,
    IngestResponse,
    ItemResult,
    ItemStatus,
    Metadata,
    SourceIngestRequest,
    TargetEntity,
    TransferredFile,
)

__all__ = [
    "FileDescriptor",
    "FileRecord",
    "IngestOptions",
    "IngestReport",
    "IngestResponse",
    "ItemResult",
    "ItemStatus",
    "Metadata",
    "SourceIngestRequest",
    "TargetEntity",
    "TransferredFile",
]
