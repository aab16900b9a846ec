"""
Ops utilities: structured logging, HTTP retry wrapper, and health checks.

Imported by main.py, ingest.py and the URL adapter -- these are plain
functions, not FastAPI routes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Union

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from archive_core.ingest.destination import DestinationNamer


# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------

def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure root logger with a structured format."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        force=True,
    )


def log_report(report: Any) -> None:
    """Log a one-line summary of an IngestReport at INFO level."""
    logger = logging.getLogger(__name__)
    logger.info(
        "Ingest | adapter=%s | target=%s:%s | ingested=%d | skipped=%d",
        report.adapter,
        report.target.kind,
        report.target.id,
        len(report.records),
        len(report.skipped),
    )
    for item in report.skipped:
        logger.info("Ingest | skipped #%d %s: %s", item.index, item.source, item.reason)


# ---------------------------------------------------------------------------
# Health / readiness checks
# ---------------------------------------------------------------------------

def health_check() -> Dict[str, str]:
    """Simple liveness probe."""
    return {"status": "ok"}


def ready_check(archive_dir: Union[str, Path], store: Any) -> Dict[str, str]:
    """Readiness probe -- verifies the archive root and the record store.

    Parameters
    ----------
    archive_dir:
        The configured archive root.
    store:
        A record store exposing ``ping()``.

    Returns
    -------
    dict with ``status`` key ("ready" or "not_ready").
    """
    try:
        DestinationNamer(archive_dir).ensure_writable()
        store.ping()
    except Exception as exc:  # noqa: BLE001
        return {"status": "not_ready", "error": str(exc)}
    return {"status": "ready"}


# ---------------------------------------------------------------------------
# HTTP retry wrapper
# ---------------------------------------------------------------------------

def _is_retryable_error(exc: BaseException) -> bool:
    """Return True for rate-limit (429), server (5xx) and transport errors."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception(_is_retryable_error),
    reraise=True,
)
def fetch_with_retry(client: httpx.Client, url: str) -> httpx.Response:
    """GET *url* with automatic retry.

    Retries up to 3 times with exponential back-off (1 s, 2 s, 4 s)
    on 429 (rate limit), 5xx (server error) and connection failures.

    Parameters
    ----------
    client:
        An ``httpx.Client`` instance.
    url:
        Absolute http(s) URL.

    Returns
    -------
    The successful response with its body loaded.

    Raises
    ------
    httpx.HTTPStatusError
        For a non-2xx final response.
    httpx.HTTPError
        For transport failures that outlast the retries.
    """
    response = client.get(url, follow_redirects=True)
    response.raise_for_status()
    return response
