"""
Archive destination naming.

Turns an original filename into a safe, collision-free filename inside the
flat archive root, and refuses to hand out destinations when the root is not
writable.
"""

from __future__ import annotations

import logging
import os
import re
import unicodedata
from pathlib import Path
from typing import Union

from archive_core.ingest.errors import ArchiveUnwritableError

logger = logging.getLogger(__name__)

UNNAMED = "unnamed_file"


def sanitize_filename(filename: str) -> str:
    """Make *filename* safe for use as a single path component.

    - folds accented characters to ASCII ('á' -> 'a');
    - replaces anything outside ``[A-Za-z0-9._-]`` with '-';
    - collapses runs of '-' and strips them from both ends.
    """
    if not filename:
        return UNNAMED

    # Only the last component counts; never let a name climb out of the archive.
    filename = re.split(r"[\\/]", filename)[-1]

    filename = unicodedata.normalize("NFC", filename)
    filename = "".join(
        c for c in unicodedata.normalize("NFD", filename)
        if unicodedata.category(c) != "Mn"
    )
    filename = re.sub(r"[^a-zA-Z0-9._\-]", "-", filename)
    filename = re.sub(r"-+", "-", filename)
    filename = filename.strip("-")

    if filename in ("", ".", ".."):
        return UNNAMED
    return filename


def _split_extension(filename: str) -> tuple[str, str]:
    # '.hiddenfile' has no extension, 'archive.tar.gz' keeps only '.gz'
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return filename, ""
    return stem, f".{ext}"


class DestinationNamer:
    """Hands out archive paths for one archive root."""

    def __init__(self, archive_dir: Union[str, Path]) -> None:
        self.archive_dir = Path(archive_dir)

    def ensure_writable(self) -> None:
        """Raise ArchiveUnwritableError unless the archive root accepts new files."""
        root = self.archive_dir
        if not root.is_dir() or not os.access(root, os.W_OK | os.X_OK):
            raise ArchiveUnwritableError(
                f'Cannot write to the following directory: "{root}"'
            )

    def rename(self, original_filename: str) -> str:
        """Derive the archive filename for *original_filename*.

        Appends ``_1``, ``_2``, ... before the extension while the sanitised
        name is already taken in the archive root.
        """
        candidate = sanitize_filename(original_filename)
        stem, ext = _split_extension(candidate)
        counter = 0
        while (self.archive_dir / candidate).exists():
            counter += 1
            candidate = f"{stem}_{counter}{ext}"
        if counter:
            logger.debug("Archive name collision for '%s', using '%s'", original_filename, candidate)
        return candidate

    def destination(self, original_filename: str) -> Path:
        """Writable, currently unused path in the archive root."""
        self.ensure_writable()
        return self.archive_dir / self.rename(original_filename)
