import logging
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from propmgr.core.database import on_commit, on_rollback
from propmgr.core.storage import BlobStore, delete_quietly
from propmgr.models.media import Media
from propmgr.models.user import User

logger = logging.getLogger(__name__)


class IncomingFile(NamedTuple):
    filename: str
    content_type: Optional[str]
    data: bytes


def store_file(
    db: Session,
    store: BlobStore,
    file: IncomingFile,
    *,
    uploaded_by: User,
    folder: str,
    related_type: Optional[str] = None,
    related_id: Optional[int] = None,
) -> Media:
    """
    Upload ``file`` and record it in ``media``.

    An upload error fails the caller. If the surrounding transaction later rolls
    back, the uploaded blob is deleted again.
    """
    blob = store.upload(file.data, file.content_type, file.filename, folder)
    on_rollback(db, lambda: delete_quietly(store, blob.key))

    media = Media(
        filename=file.filename,
        content_type=file.content_type,
        size=len(file.data),
        storage_key=blob.key,
        url=blob.url,
        uploaded_by_id=uploaded_by.id,
        related_type=related_type,
        related_id=related_id,
    )
    db.add(media)
    db.flush()
    return media


def discard_file(db: Session, store: Optional[BlobStore], media: Media) -> None:
    """Delete the media row now and its blob once the transaction commits."""
    key = media.storage_key
    db.delete(media)
    db.flush()
    if store is not None:
        on_commit(db, lambda: delete_quietly(store, key))
