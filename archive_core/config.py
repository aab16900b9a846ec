"""
Unified configuration for the archive ingestion core.

Single entry point for all configurable values.
Defaults work for a local checkout with zero config changes.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class IngestConfig(BaseSettings):
    """Ingestion configuration loaded from environment variables."""

    # Archive
    archive_dir: str = Field(default="files", alias="ARCHIVE_DIR")
    database_path: str = Field(default="archive.db", alias="DATABASE_PATH")

    # Policy
    ignore_invalid_files: bool = Field(default=False, alias="IGNORE_INVALID_FILES")
    allowed_extensions: str = Field(
        default="",
        alias="ALLOWED_EXTENSIONS",
        description="Comma-separated extension allowlist, e.g. 'jpg,png,pdf'. Empty allows any.",
    )
    max_file_size: int = Field(
        default=0, ge=0, alias="MAX_FILE_SIZE", description="Bytes. 0 means unlimited."
    )

    # HTTP frontend
    api_adapters: str = Field(
        default="Url",
        alias="API_ADAPTERS",
        description="Comma-separated adapters POST /items/{id}/ingest accepts.",
    )

    # URL adapter
    http_timeout: float = Field(default=30.0, gt=0, alias="HTTP_TIMEOUT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def archive_path(self) -> Path:
        """Resolve the archive directory relative to the project root."""
        p = Path(self.archive_dir)
        if p.is_absolute():
            return p
        return Path(__file__).parent.parent / p

    def extension_allowlist(self) -> List[str]:
        """Lower-cased extensions without the leading dot."""
        return [
            ext.strip().lower().lstrip(".")
            for ext in self.allowed_extensions.split(",")
            if ext.strip()
        ]

    def api_adapter_list(self) -> List[str]:
        """Adapter names the JSON ingest endpoint may use."""
        return [name.strip() for name in self.api_adapters.split(",") if name.strip()]


_config: Optional[IngestConfig] = None


def get_config() -> IngestConfig:
    """Return the singleton IngestConfig instance."""
    global _config
    if _config is None:
        _config = IngestConfig()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
