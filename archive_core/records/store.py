"""
File record persistence.

RecordStore is the collaborator the orchestrator hands each transferred file
to. SQLiteRecordStore is the bundled implementation: one ``files`` row per
archive copy plus one ``element_texts`` row per metadata value.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from archive_core.ingest.errors import PersistenceError
from shared.schema import FileRecord, Metadata, TargetEntity

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  target_kind TEXT NOT NULL,
  target_id TEXT NOT NULL,
  original_filename TEXT NOT NULL,
  archive_filename TEXT NOT NULL UNIQUE,
  archive_path TEXT NOT NULL,
  size INTEGER NOT NULL,
  mime_type TEXT NOT NULL,
  checksum TEXT NOT NULL,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS element_texts (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  file_id INTEGER NOT NULL,
  element TEXT NOT NULL,
  text TEXT NOT NULL,
  position INTEGER NOT NULL,
  FOREIGN KEY(file_id) REFERENCES files(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_files_target ON files(target_kind, target_id);
CREATE INDEX IF NOT EXISTS idx_element_texts_file ON element_texts(file_id);
"""

_HASH_CHUNK = 1024 * 1024


def file_defaults(archive_path: Union[str, Path]) -> Dict[str, Any]:
    """Derive size, MIME type and SHA-256 checksum from the archive copy.

    Raises
    ------
    PersistenceError
        If the archive copy cannot be read.
    """
    path = Path(archive_path)
    digest = hashlib.sha256()
    try:
        size = path.stat().st_size
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(_HASH_CHUNK), b""):
                digest.update(chunk)
    except OSError as exc:
        raise PersistenceError(f"Cannot read archive copy: {exc}", source=str(path)) from exc

    mime_type, _ = mimetypes.guess_type(path.name)
    return {
        "archive_filename": path.name,
        "archive_path": str(path),
        "size": size,
        "mime_type": mime_type or "application/octet-stream",
        "checksum": digest.hexdigest(),
    }


class RecordStore(ABC):
    """Persistence collaborator for ingested files."""

    @abstractmethod
    def create_record(
        self,
        archive_path: str,
        original_filename: str,
        metadata: Optional[Metadata],
        target: TargetEntity,
    ) -> FileRecord:
        """Default, attach metadata to and persist a record for *archive_path*.

        Must raise PersistenceError on any failure and leave nothing persisted.
        """
        ...

    @abstractmethod
    def get(self, record_id: int) -> Optional[FileRecord]:
        ...

    @abstractmethod
    def list_for_target(self, target: TargetEntity) -> List[FileRecord]:
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class SQLiteRecordStore(RecordStore):
    """SQLite-backed record store.

    ``database_path`` may be ``":memory:"`` for a throwaway store.
    """

    def __init__(self, database_path: Union[str, Path]) -> None:
        self.database_path = str(database_path)
        # One connection shared by FastAPI worker threads; every use holds _lock.
        self._conn = sqlite3.connect(self.database_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def ping(self) -> None:
        """Raise PersistenceError if the database is unusable."""
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Database unavailable: {exc}") from exc

    def create_record(
        self,
        archive_path: str,
        original_filename: str,
        metadata: Optional[Metadata],
        target: TargetEntity,
    ) -> FileRecord:
        defaults = file_defaults(archive_path)
        created_at = datetime.now(timezone.utc).isoformat()
        metadata = metadata or {}

        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO files (target_kind, target_id, original_filename, archive_filename, "
                    "archive_path, size, mime_type, checksum, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        target.kind,
                        str(target.id),
                        original_filename,
                        defaults["archive_filename"],
                        defaults["archive_path"],
                        defaults["size"],
                        defaults["mime_type"],
                        defaults["checksum"],
                        created_at,
                    ),
                )
                file_id = cursor.lastrowid
                self._conn.executemany(
                    "INSERT INTO element_texts (file_id, element, text, position) VALUES (?, ?, ?, ?)",
                    [
                        (file_id, element, text, position)
                        for element, texts in metadata.items()
                        for position, text in enumerate(texts)
                    ],
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not save file record: {exc}", source=archive_path) from exc

        logger.debug("Saved file record %s for %s", file_id, defaults["archive_filename"])
        return FileRecord(
            id=file_id,
            target_kind=target.kind,
            target_id=str(target.id),
            original_filename=original_filename,
            metadata={k: list(v) for k, v in metadata.items()},
            created_at=created_at,
            **defaults,
        )

    def get(self, record_id: int) -> Optional[FileRecord]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM files WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                return None
            return self._to_record(row)

    def list_for_target(self, target: TargetEntity) -> List[FileRecord]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM files WHERE target_kind = ? AND target_id = ? ORDER BY id",
                (target.kind, str(target.id)),
            ).fetchall()
            return [self._to_record(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM files").fetchone()[0]

    def _to_record(self, row: sqlite3.Row) -> FileRecord:
        # Callers hold _lock.
        metadata: Metadata = {}
        for element, text in self._element_texts(row["id"]):
            metadata.setdefault(element, []).append(text)
        return FileRecord(
            id=row["id"],
            target_kind=row["target_kind"],
            target_id=row["target_id"],
            original_filename=row["original_filename"],
            archive_filename=row["archive_filename"],
            archive_path=row["archive_path"],
            size=row["size"],
            mime_type=row["mime_type"],
            checksum=row["checksum"],
            metadata=metadata,
            created_at=row["created_at"],
        )

    def _element_texts(self, file_id: int) -> List[Tuple[str, str]]:
        rows = self._conn.execute(
            "SELECT element, text FROM element_texts WHERE file_id = ? ORDER BY element, position",
            (file_id,),
        ).fetchall()
        return [(r["element"], r["text"]) for r in rows]
