"""
URL ingestion adapter.

Downloads files over HTTP(S) into the archive.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, List, Optional
from urllib.parse import unquote, urlparse

import httpx

from archive_core.ingest.base import IngestionAdapter
from archive_core.ingest.errors import ParseError, TransferError
from ops import fetch_with_retry
from shared.schema import FileDescriptor

logger = logging.getLogger(__name__)

_SCHEMES = ("http", "https")


class UrlAdapter(IngestionAdapter):
    """Ingest files addressed by absolute http(s) URLs.

    Input: a URL, a ``{"source": url, "name": ..., "metadata": ...}`` mapping,
    or a list of either. Anything that is not an absolute http(s) URL makes the
    whole input unusable.
    """

    name = "Url"

    def __init__(self, *args: Any, client: Optional[httpx.Client] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client = client

    def parse(self, raw_input: Any) -> List[FileDescriptor]:
        if raw_input is None:
            raise ParseError("Url: no URLs given")
        descriptors = self._descriptors_from(raw_input, accepts=(str,))
        cleaned: List[FileDescriptor] = []
        for descriptor in descriptors:
            url = descriptor.source.strip()
            parsed = urlparse(url)
            if parsed.scheme.lower() not in _SCHEMES or not parsed.netloc:
                raise ParseError(f"Url: '{descriptor.source}' is not an absolute http(s) URL")
            cleaned.append(descriptor.model_copy(update={"source": url}))
        return cleaned

    def validate(self, descriptor: FileDescriptor) -> None:
        self._check_extension(descriptor, self.get_original_filename(descriptor))

    def get_original_filename(self, descriptor: FileDescriptor) -> str:
        if descriptor.name:
            return descriptor.name
        parsed = urlparse(descriptor.source)
        basename = unquote(PurePosixPath(parsed.path).name)
        return basename or parsed.hostname or descriptor.source

    def transfer(self, descriptor: FileDescriptor, original_filename: str) -> Optional[str]:
        # Fail before touching the network if the archive cannot take the file.
        self.namer.ensure_writable()

        try:
            if self._client is not None:
                content = self._download(self._client, descriptor.source)
            else:
                with httpx.Client(timeout=self.config.http_timeout, follow_redirects=True) as client:
                    content = self._download(client, descriptor.source)
        except httpx.HTTPStatusError as exc:
            raise TransferError(
                f"Server answered {exc.response.status_code}", source=descriptor.source
            ) from exc
        except httpx.HTTPError as exc:
            raise TransferError(f"Download failed: {exc}", source=descriptor.source) from exc

        limit = self.config.max_file_size
        if limit and len(content) > limit:
            raise TransferError(
                f"Downloaded {len(content)} bytes, larger than the {limit} byte limit",
                source=descriptor.source,
            )
        return self._write_to_archive(descriptor, original_filename, [content])

    @staticmethod
    def _download(client: httpx.Client, url: str) -> bytes:
        response = fetch_with_retry(client, url)
        logger.debug("Fetched %s (%d bytes)", url, len(response.content))
        return response.content
