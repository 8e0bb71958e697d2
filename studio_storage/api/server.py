"""
FastAPI server for the studio object store.

 - structured logging (json) with a request_id middleware
 - upload URL issuance and server-mediated uploads
 - object downloads with ACL checks (X-User-Id header carries the caller)
 - /metrics endpoint for Prometheus

Run: uvicorn studio_storage.api.server:app --port 8000
"""
import logging
import time
import uuid
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from studio_storage import __version__
from studio_storage.config import cfg
from studio_storage.error_handling import (
    AccessDeniedError,
    InvalidAclPolicyError,
    ObjectNotFoundError,
    StorageError,
    UnknownAccessGroupError,
)
from studio_storage.logging_config import configure_logging, set_request_id
from studio_storage.policy.acl import ObjectAclPolicy, ObjectPermission
from studio_storage.storage.factory import create_object_storage_service
from studio_storage.storage.gateway import OBJECTS_PREFIX, ObjectStorageService

configure_logging()
logger = logging.getLogger("studio_storage.api")

app = FastAPI(title="Studio Object Storage", version=__version__)


@lru_cache(maxsize=1)
def get_storage_service() -> ObjectStorageService:
    return create_object_storage_service()


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return (x_user_id or "").strip() or None


# --- middleware & error handlers ---------------------------------------------------------

@app.middleware("http")
async def add_request_id_header(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.time()
    response = None
    try:
        response = await call_next(request)
    finally:
        elapsed_ms = (time.time() - start) * 1000.0
        logger.info("http.request", extra={
            "method": request.method,
            "path": request.url.path,
            "status": getattr(response, "status_code", None),
            "latency_ms": elapsed_ms,
        })
    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"code": exc.status_code, "message": exc.detail})


@app.exception_handler(ObjectNotFoundError)
async def not_found_handler(request: Request, exc: ObjectNotFoundError):
    return JSONResponse(status_code=404, content={"code": 404, "message": str(exc)})


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    return JSONResponse(status_code=403, content={"code": 403, "message": str(exc) or "Access denied"})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    # name the failure class so operators can tell credentials from a missing bucket
    logger.error("storage failure: %s", exc)
    return JSONResponse(status_code=500, content={
        "code": 500,
        "message": str(exc),
        "reason": exc.reason,
        "attempts": exc.attempts,
    })


@app.exception_handler(UnknownAccessGroupError)
async def unknown_group_handler(request: Request, exc: UnknownAccessGroupError):
    logger.error("ACL evaluation failed: %s", exc)
    return JSONResponse(status_code=500, content={"code": 500, "message": "ACL evaluation failed"})


@app.exception_handler(InvalidAclPolicyError)
async def invalid_policy_handler(request: Request, exc: InvalidAclPolicyError):
    logger.error("ACL policy unreadable: %s", exc)
    return JSONResponse(status_code=500, content={"code": 500, "message": "ACL policy unreadable"})


# --- schemas -----------------------------------------------------------------------------

class UploadURLResponse(BaseModel):
    uploadURL: str
    objectPath: str
    expiresIn: int


class UploadResponse(BaseModel):
    objectPath: str
    originalName: Optional[str] = None
    size: int
    mimeType: str
    degraded: bool = False


class AclUpdateRequest(BaseModel):
    objectURL: str
    aclPolicy: ObjectAclPolicy


class AclUpdateResponse(BaseModel):
    objectPath: str


# --- routes ------------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/api/objects/upload", response_model=UploadURLResponse)
def request_upload_url(service: ObjectStorageService = Depends(get_storage_service)):
    ticket = service.get_object_entity_upload_url()
    return UploadURLResponse(uploadURL=ticket.upload_url, objectPath=ticket.object_path, expiresIn=ticket.expires_in)


@app.post("/api/objects", response_model=UploadResponse)
def upload_object(
    file: UploadFile = File(...),
    visibility: str = Form("private"),
    user_id: Optional[str] = Depends(get_user_id),
    service: ObjectStorageService = Depends(get_storage_service),
):
    allowed: List[str] = cfg.allowed_upload_types
    content_type = file.content_type or "application/octet-stream"
    if allowed and content_type not in allowed:
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed: {', '.join(allowed)}")
    if visibility not in ("public", "private"):
        raise HTTPException(status_code=400, detail="visibility must be 'public' or 'private'")

    data = file.file.read(cfg.MAX_UPLOAD_BYTES + 1)
    if not data:
        raise HTTPException(status_code=400, detail="No image file provided")
    if len(data) > cfg.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"File exceeds {cfg.MAX_UPLOAD_BYTES} bytes")

    policy = ObjectAclPolicy(owner=user_id, visibility=visibility) if user_id else None
    object_path = service.upload_buffer(data, filename=file.filename, content_type=content_type, acl_policy=policy)
    return UploadResponse(
        objectPath=object_path,
        originalName=file.filename,
        size=len(data),
        mimeType=content_type,
        degraded=not object_path.startswith(OBJECTS_PREFIX),
    )


@app.put("/api/objects/acl", response_model=AclUpdateResponse)
def update_object_acl(
    req: AclUpdateRequest,
    user_id: Optional[str] = Depends(get_user_id),
    service: ObjectStorageService = Depends(get_storage_service),
):
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    normalized = service.normalize_object_entity_path(req.objectURL)
    if normalized.startswith(OBJECTS_PREFIX):
        obj = service.get_object_entity_file(normalized)
        if not service.can_access_object_entity(obj, user_id, ObjectPermission.WRITE):
            raise AccessDeniedError("Not allowed to change this object's policy")
    object_path = service.try_set_object_entity_acl_policy(normalized, req.aclPolicy)
    return AclUpdateResponse(objectPath=object_path)


@app.get("/objects/{object_path:path}")
def download_object_entity(
    object_path: str,
    user_id: Optional[str] = Depends(get_user_id),
    service: ObjectStorageService = Depends(get_storage_service),
):
    obj = service.get_object_entity_file(f"{OBJECTS_PREFIX}{object_path}")
    if not service.can_access_object_entity(obj, user_id, ObjectPermission.READ):
        # same answer as a missing object so existence is not revealed
        raise ObjectNotFoundError()
    return service.download_object(obj)


@app.get("/public-objects/{file_path:path}")
def download_public_object(file_path: str, service: ObjectStorageService = Depends(get_storage_service)):
    obj = service.search_public_object(file_path)
    if obj is None:
        raise HTTPException(status_code=404, detail="File not found")
    return service.download_object(obj, is_public=True)


@app.get("/uploads/{filename}")
def serve_local_upload(filename: str, service: ObjectStorageService = Depends(get_storage_service)):
    path = service.local_store.resolve(filename) if service.local_store else None
    if path is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("studio_storage.api.server:app", host="0.0.0.0", port=8000)
