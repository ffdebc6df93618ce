import logging
import os

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response

from .db import SessionLocal, engine, wait_for_db
from .exceptions import CatalogError
from .models import Base
from .schemas import BucketCreate, BucketOut, RevisionOut
from .store import CatalogObjectStore

LOG_LEVEL = os.environ.get("CATALOG_LOG_LEVEL", "INFO").upper()

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

_store = CatalogObjectStore(SessionLocal)

def get_store() -> CatalogObjectStore:
    return _store

app = FastAPI(title="Catalog")

@app.on_event("startup")
def startup():
    wait_for_db()
    Base.metadata.create_all(bind=engine)

@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

@app.get("/health")
def health():
    return {"status": "ok"}

# --- Buckets ---

@app.post("/buckets", response_model=BucketOut, status_code=status.HTTP_201_CREATED)
def create_bucket(payload: BucketCreate, store: CatalogObjectStore = Depends(get_store)):
    return store.create_bucket(payload.name, payload.owner)

@app.get("/buckets", response_model=list[BucketOut])
def list_buckets(store: CatalogObjectStore = Depends(get_store)):
    return store.list_buckets()

@app.get("/buckets/{bucket_id}", response_model=BucketOut)
def get_bucket(bucket_id: int, store: CatalogObjectStore = Depends(get_store)):
    return store.get_bucket(bucket_id)

@app.delete("/buckets/{bucket_id}", status_code=204)
def delete_bucket(bucket_id: int, store: CatalogObjectStore = Depends(get_store)):
    store.delete_bucket(bucket_id)
    return None

# --- Catalog objects ---
# names may contain "/", so the longer routes are declared before the bare {name:path} ones

@app.post("/buckets/{bucket_id}/resources", response_model=RevisionOut, status_code=status.HTTP_201_CREATED)
async def create_object(
    bucket_id: int,
    name: str,
    kind: str,
    commit_message: str = Query(alias="commitMessage"),
    content_type: str = Query(alias="contentType"),
    file: UploadFile = File(...),
    store: CatalogObjectStore = Depends(get_store),
):
    payload = await file.read()
    return store.create_or_commit(bucket_id, name, kind, content_type, commit_message, payload)

@app.get("/buckets/{bucket_id}/resources", response_model=list[RevisionOut])
def list_objects(bucket_id: int, kind: str | None = None, store: CatalogObjectStore = Depends(get_store)):
    return store.list_objects(bucket_id, kind=kind)

# --- Revisions ---

@app.get("/buckets/{bucket_id}/resources/{name:path}/revisions/{revision_id}/raw")
def get_raw_revision(bucket_id: int, name: str, revision_id: int, store: CatalogObjectStore = Depends(get_store)):
    raw = store.get_raw_payload(bucket_id, name, revision_id)
    return Response(content=raw.payload, media_type=raw.content_type)

@app.get("/buckets/{bucket_id}/resources/{name:path}/revisions/{revision_id}", response_model=RevisionOut)
def get_revision(bucket_id: int, name: str, revision_id: int, store: CatalogObjectStore = Depends(get_store)):
    return store.get_revision(bucket_id, name, revision_id)

@app.post("/buckets/{bucket_id}/resources/{name:path}/revisions", response_model=RevisionOut, status_code=status.HTTP_201_CREATED)
async def create_revision(
    bucket_id: int,
    name: str,
    commit_message: str = Query(alias="commitMessage"),
    file: UploadFile = File(...),
    store: CatalogObjectStore = Depends(get_store),
):
    payload = await file.read()
    return store.commit_revision(bucket_id, name, commit_message, payload)

@app.get("/buckets/{bucket_id}/resources/{name:path}/revisions", response_model=list[RevisionOut])
def list_revisions(bucket_id: int, name: str, store: CatalogObjectStore = Depends(get_store)):
    return store.list_revisions(bucket_id, name)

@app.get("/buckets/{bucket_id}/resources/{name:path}/raw")
def get_raw_object(bucket_id: int, name: str, store: CatalogObjectStore = Depends(get_store)):
    raw = store.get_raw_payload(bucket_id, name)
    return Response(content=raw.payload, media_type=raw.content_type)

@app.get("/buckets/{bucket_id}/resources/{name:path}", response_model=RevisionOut)
def get_object(bucket_id: int, name: str, store: CatalogObjectStore = Depends(get_store)):
    return store.get_latest(bucket_id, name)

@app.delete("/buckets/{bucket_id}/resources/{name:path}", status_code=204)
def delete_object(bucket_id: int, name: str, store: CatalogObjectStore = Depends(get_store)):
    store.delete(bucket_id, name)
    return None

# --- Archives ---

@app.get("/buckets/{bucket_id}/archive")
def export_archive(
    bucket_id: int,
    name: list[str] | None = Query(default=None),
    store: CatalogObjectStore = Depends(get_store),
):
    content = store.export_archive(bucket_id, name)
    if content is None:
        raise HTTPException(status_code=404, detail="Nothing to export")
    headers = {"Content-Disposition": f'attachment; filename="bucket-{bucket_id}.zip"'}
    return Response(content=content, media_type="application/zip", headers=headers)

@app.post("/buckets/{bucket_id}/archive", response_model=list[RevisionOut], status_code=status.HTTP_201_CREATED)
async def import_archive(
    bucket_id: int,
    kind: str,
    commit_message: str = Query(alias="commitMessage"),
    content_type: str = Query(alias="contentType"),
    file: UploadFile = File(...),
    store: CatalogObjectStore = Depends(get_store),
):
    archive_bytes = await file.read()
    return store.import_archive(bucket_id, archive_bytes, kind, content_type, commit_message)
