from typing import Generator, Optional

from fastapi import Request, UploadFile
from sqlalchemy.orm import Session

from propmgr.core.database import SessionLocal
from propmgr.core.storage import BlobStore, LocalBlobStore
from propmgr.services.media import IncomingFile

_blob_store = None


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_db(request: Request) -> Generator[Session, None, None]:
    db = SessionLocal()
    # picked up by log_audit
    db.info["client_ip"] = client_ip(request)
    try:
        yield db
    finally:
        db.close()


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore()
    return _blob_store


def to_incoming(upload: Optional[UploadFile]) -> Optional[IncomingFile]:
    """Read an uploaded file into memory for the services layer."""
    if upload is None or not upload.filename:
        return None
    return IncomingFile(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        data=upload.file.read(),
    )
