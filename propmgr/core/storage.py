"""
Blob store used for payment proofs, message attachments and onboarding files.

Only the component that uploaded a blob deletes it. Upload failures propagate;
compensating deletes are scheduled through ``on_rollback`` and logged on failure.
"""
import logging
import os
import re
import uuid
from pathlib import Path
from typing import NamedTuple, Optional

from propmgr.core.config import settings

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class StoredBlob(NamedTuple):
    key: str
    url: str


class BlobStore:
    def upload(self, data: bytes, content_type: Optional[str], filename: str, folder: str) -> StoredBlob:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Stores blobs on the local filesystem under ``root``."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.MEDIA_ROOT)
        self.base_url = (base_url or settings.MEDIA_BASE_URL).rstrip("/")

    def upload(self, data: bytes, content_type: Optional[str], filename: str, folder: str) -> StoredBlob:
        safe = _SAFE_NAME.sub("_", os.path.basename(filename or "file")) or "file"
        key = f"{folder.strip('/')}/{uuid.uuid4().hex}_{safe}"
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Stored blob %s (%d bytes)", key, len(data))
        return StoredBlob(key=key, url=f"{self.base_url}/{key}")

    def delete(self, key: str) -> None:
        (self.root / key).unlink(missing_ok=True)
        logger.info("Deleted blob %s", key)


def delete_quietly(store: BlobStore, key: str) -> None:
    """Best-effort delete for compensation paths."""
    try:
        store.delete(key)
    except Exception:
        logger.exception("Failed to delete blob %s", key)
