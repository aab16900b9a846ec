"""
Archive Ingest - FastAPI Application

Endpoints:
  POST /items/{item_id}/files   multipart upload -> Upload adapter
  POST /items/{item_id}/ingest  JSON list of sources -> adapter chosen by name,
                                limited to API_ADAPTERS (default: Url)
  GET  /items/{item_id}/files   records attached to an item
  GET  /health, GET /ready      probes
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from archive_core.config import IngestConfig, get_config
from archive_core.ingest.errors import (
    ArchiveUnwritableError,
    IngestError,
    InvalidFileError,
    ParseError,
    PersistenceError,
    TransferError,
    UnknownAdapterError,
)
from archive_core.ingest.orchestrator import ingest_files
from archive_core.records.store import SQLiteRecordStore
from ops import health_check, log_report, ready_check, setup_logging
from shared.schema import FileRecord, IngestReport, IngestResponse, SourceIngestRequest, TargetEntity

# ---------------------------------------------------------------------------
# Environment & logging
# ---------------------------------------------------------------------------
load_dotenv()
setup_logging()
logger = logging.getLogger(__name__)

# Error kind -> HTTP status. Subclasses are listed before their bases.
_STATUS_BY_ERROR = (
    (UnknownAdapterError, 400),
    (ParseError, 400),
    (InvalidFileError, 422),
    (ArchiveUnwritableError, 507),
    (TransferError, 502),
    (PersistenceError, 500),
)


# ---------------------------------------------------------------------------
# Application state (populated during lifespan)
# ---------------------------------------------------------------------------
class AppState:
    """Mutable container for resources initialised at startup."""

    def __init__(self) -> None:
        self.config: Optional[IngestConfig] = None
        self.store: Any = None


state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the record store once at startup, close it on shutdown."""
    if state.config is None:
        state.config = get_config()
    setup_logging(state.config.log_level)

    if state.store is None:
        logger.info("Opening record store at %s ...", state.config.database_path)
        state.store = SQLiteRecordStore(state.config.database_path)

    logger.info("Archive directory: %s", state.config.archive_path())
    logger.info("Startup complete.")
    yield
    logger.info("Shutting down.")
    state.store.close()
    state.store = None


app = FastAPI(title="Archive Ingest", lifespan=lifespan)


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    status = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status = code
            break
    logger.warning("%s %s failed [%s]: %s", request.method, request.url.path, exc.kind, exc)
    return JSONResponse(
        status_code=status,
        content={"error": exc.kind, "detail": exc.message, "source": exc.source},
    )


def _ignore_invalid(requested: Optional[bool]) -> bool:
    """Per-request flag, or IGNORE_INVALID_FILES when the request leaves it out."""
    if requested is None:
        return state.config.ignore_invalid_files
    return requested


def _respond(report: IngestReport) -> IngestResponse:
    log_report(report)
    return IngestResponse(records=report.records, skipped=report.skipped)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@app.post("/items/{item_id}/files", response_model=IngestResponse, status_code=201)
def upload_files(
    item_id: str,
    files: List[UploadFile] = File(...),
    ignore_invalid_files: Optional[bool] = Form(None),
    ignore_no_file: bool = Form(False),
) -> IngestResponse:
    """Ingest files uploaded as multipart form data."""
    report = ingest_files(
        "Upload",
        TargetEntity(id=item_id),
        {"files": files},
        state.store,
        options={
            "ignore_invalid_files": _ignore_invalid(ignore_invalid_files),
            "ignore_no_file": ignore_no_file,
        },
        config=state.config,
    )
    return _respond(report)


@app.post("/items/{item_id}/ingest", response_model=IngestResponse, status_code=201)
def ingest_sources(item_id: str, req: SourceIngestRequest) -> IngestResponse:
    """Ingest files described by URLs or paths through the named adapter."""
    if req.adapter == "Upload":
        raise UnknownAdapterError("Use POST /items/{item_id}/files for uploads")
    enabled = state.config.api_adapter_list()
    if req.adapter not in enabled:
        raise UnknownAdapterError(
            f"Adapter '{req.adapter}' is not enabled here; enabled: {', '.join(enabled) or 'none'}"
        )
    report = ingest_files(
        req.adapter,
        TargetEntity(id=item_id),
        req.sources,
        state.store,
        options={"ignore_invalid_files": _ignore_invalid(req.ignore_invalid_files)},
        config=state.config,
    )
    return _respond(report)


@app.get("/items/{item_id}/files", response_model=List[FileRecord])
def list_files(item_id: str) -> List[FileRecord]:
    return state.store.list_for_target(TargetEntity(id=item_id))


# ---------------------------------------------------------------------------
# Health & Readiness
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness probe."""
    return health_check()


@app.get("/ready")
async def ready():
    """Readiness probe -- checks the archive root and the record store."""
    return ready_check(state.config.archive_path(), state.store)
