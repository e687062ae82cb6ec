"""Serves blobs written by the local blob store (development only)."""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from sharebox.dependencies import get_blob_store
from sharebox.errors import BlobStoreError
from sharebox.services.blob_store import STORED_CATEGORIES, BlobStore, ContentCategory, LocalBlobStore

router = APIRouter(prefix="/blobs", tags=["blobs"])


@router.get("/{category}/{storage_key:path}")
async def get_blob(
    category: str,
    storage_key: str,
    disposition: str | None = Query(None, alias="response-content-disposition"),
    blob_store: BlobStore = Depends(get_blob_store),
):
    if not isinstance(blob_store, LocalBlobStore):
        raise HTTPException(404, "Not found")
    try:
        cat = ContentCategory(category)
    except ValueError:
        raise HTTPException(404, "Not found")
    if cat not in STORED_CATEGORIES:
        raise HTTPException(404, "Not found")
    try:
        path = blob_store.path_for(storage_key, cat)
    except BlobStoreError:
        raise HTTPException(404, "Not found")
    if not path.is_file():
        raise HTTPException(404, "Not found")

    headers = None
    if _header_safe(disposition):
        headers = {"Content-Disposition": disposition}
    return FileResponse(path=str(path), headers=headers)


def _header_safe(disposition: str | None) -> bool:
    """Only single-line latin-1 attachment dispositions are echoed back."""
    if not disposition or not disposition.startswith("attachment"):
        return False
    if any(c in disposition for c in "\r\n"):
        return False
    try:
        disposition.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True
