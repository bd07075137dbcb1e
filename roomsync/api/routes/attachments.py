# roomsync/api/routes/attachments.py

import mimetypes

from fastapi import APIRouter, HTTPException, Response

from roomsync.core import state
from roomsync.services.blob_store import LocalBlobStore

router = APIRouter()


@router.get("/attachments/{path}")
async def get_attachment(path: str):
    """
    Serve a stored attachment.

    Only the local blob store is served from here; other blob stores hand
    out their own public URLs.

    Raises:
        HTTPException: 404 if the blob does not exist
    """
    store = state.blob_store
    if not isinstance(store, LocalBlobStore) or not store.exists(path):
        raise HTTPException(status_code=404, detail="Attachment not found")

    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=store.read(path), media_type=media_type)
