from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


Metadata = Dict[str, List[str]]


def _coerce_metadata(value: Any) -> Metadata:
    """Accept ``{field: text}`` or ``{field: [texts]}`` and normalise to lists."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("metadata must be a mapping of field -> text(s)")
    normalised: Metadata = {}
    for field, texts in value.items():
        if isinstance(texts, str):
            texts = [texts]
        normalised[str(field)] = [str(t) for t in texts]
    return normalised


class TargetEntity(BaseModel):
    """Owning entity every created file record is attached to."""

    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    kind: str = "item"


class IngestOptions(BaseModel):
    """Options fixed for the lifetime of one adapter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ignore_invalid_files: bool = Field(
        default=False,
        description="Skip files that fail validation or transfer instead of aborting the batch.",
    )
    ignore_no_file: bool = Field(
        default=False,
        description="Upload only: drop form fields where no file was chosen.",
    )


class FileDescriptor(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: str = Field(..., description="Path, URL or upload label identifying the file")
    name: Optional[str] = Field(default=None, description="Explicit display filename")
    metadata: Metadata = Field(default_factory=dict)
    handle: Any = Field(default=None, exclude=True, description="Live upload object, if any")

    @field_validator("metadata", mode="before")
    @classmethod
    def _normalise_metadata(cls, value: Any) -> Metadata:
        return _coerce_metadata(value)


class TransferredFile(BaseModel):
    archive_path: str
    original_filename: str
    metadata: Metadata = Field(default_factory=dict)


class FileRecord(BaseModel):
    id: Optional[int] = None
    target_kind: str
    target_id: str
    original_filename: str
    archive_filename: str
    archive_path: str
    size: int = Field(..., ge=0)
    mime_type: str
    checksum: str = Field(..., description="SHA-256 of the archive copy")
    metadata: Metadata = Field(default_factory=dict)
    created_at: Optional[str] = Field(default=None, description="ISO timestamp")


ItemStatus = Literal["ingested", "skipped"]


class ItemResult(BaseModel):
    index: int = Field(..., ge=0)
    source: str
    status: ItemStatus
    record: Optional[FileRecord] = None
    error_kind: Optional[str] = None
    reason: Optional[str] = None


class IngestReport(BaseModel):
    adapter: str
    target: TargetEntity
    records: List[FileRecord] = Field(default_factory=list)
    results: List[ItemResult] = Field(default_factory=list)

    @property
    def skipped(self) -> List[ItemResult]:
        return [r for r in self.results if r.status == "skipped"]


class SourceIngestRequest(BaseModel):
    adapter: str = "Url"
    sources: List[Union[str, Dict[str, Any]]]
    ignore_invalid_files: Optional[bool] = Field(
        default=None, description="Falls back to IGNORE_INVALID_FILES when omitted."
    )


class IngestResponse(BaseModel):
    records: List[FileRecord]
    skipped: List[ItemResult] = Field(default_factory=list)
