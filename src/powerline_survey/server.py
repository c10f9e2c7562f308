"""FastAPI server for KMZ import and fault location."""

from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from .config import get_settings
from .errors import DocumentError, LineNotFound, OutOfRange, StoreError, Unresolvable, UnsupportedFileType
from .importer import import_document
from .kml_reader import read_document
from .locator import resolve_fault_location
from .logging_config import setup_logging
from .memory_store import InMemoryStore
from .models import ImportResult, LocateRequest, LocationResult
from .store import GeometryService, GeometryStore

logger = logging.getLogger(__name__)

ACCEPTED_EXTS = (".kmz", ".kml")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Client-Info, Apikey",
}


@lru_cache(maxsize=1)
def get_store() -> GeometryStore:
    settings = get_settings()
    if settings.store_backend == "sql":
        from .sql_store import SqlStore

        return SqlStore.from_url(settings.database_url)
    return InMemoryStore()


def get_geometry_service(store: GeometryStore = Depends(get_store)) -> GeometryService:
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.service_name, settings.log_level)
    yield


app = FastAPI(title="Powerline Survey", version="0.1.0", lifespan=lifespan)


@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@app.exception_handler(HTTPException)
async def _http_error(request: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    if request.url.path == "/import-kmz":
        return _error(400, "No file provided")
    return _error(400, "lineaId and km are required")


@app.exception_handler(DocumentError)
async def _document_error(request: Request, exc: DocumentError):
    if isinstance(exc, UnsupportedFileType):
        return _error(400, str(exc))
    logger.error("action=import_kmz error=%s", exc)
    return _error(500, str(exc), stack="".join(traceback.format_exception(exc)))


@app.exception_handler(LineNotFound)
async def _line_not_found(request: Request, exc: LineNotFound):
    return _error(404, str(exc))


@app.exception_handler(OutOfRange)
async def _out_of_range(request: Request, exc: OutOfRange):
    return _error(400, str(exc))


@app.exception_handler(Unresolvable)
async def _unresolvable(request: Request, exc: Unresolvable):
    return _error(500, str(exc))


@app.exception_handler(StoreError)
async def _store_error(request: Request, exc: StoreError):
    logger.error("action=store error=%s", exc)
    return _error(500, str(exc))


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/import-kmz", response_model=ImportResult)
async def import_kmz(
    file: UploadFile | None = File(None),
    store: GeometryStore = Depends(get_store),
):
    """Import a .kmz or .kml survey file, replacing the topology of every line it contains."""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    filename = file.filename
    if not filename.lower().endswith(ACCEPTED_EXTS):
        raise HTTPException(status_code=400, detail="File must be .kmz or .kml")

    content = await file.read()
    logger.info("action=import_kmz file=%s bytes=%d", filename, len(content))
    root = await run_in_threadpool(read_document, content, filename)
    return await run_in_threadpool(import_document, root, store)


@app.post("/compute-fault-location", response_model=LocationResult)
def compute_fault_location(
    body: LocateRequest,
    store: GeometryStore = Depends(get_store),
    geometry: GeometryService = Depends(get_geometry_service),
):
    """Resolve kilometer ``km`` of line ``lineaId`` to a map position."""
    return resolve_fault_location(store, geometry, body.lineaId, body.km)
