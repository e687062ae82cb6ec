"""Upload API route."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from sharebox.config import Settings
from sharebox.dependencies import get_lifecycle, get_settings
from sharebox.errors import ShareboxError
from sharebox.schemas.container import UploadResponse
from sharebox.services.lifecycle import ContainerLifecycle
from sharebox.services.staging import staged_uploads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["upload"])


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: Optional[list[UploadFile]] = File(None),
    container_name: Optional[str] = Form(None, alias="containerName"),
    expiry_duration: Optional[str] = Form(None, alias="expiryDuration"),
    lifecycle: ContainerLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
):
    """Upload files into a new container and return its share link."""
    try:
        async with staged_uploads(files or [], settings.UPLOAD_STAGING_DIR, settings.UPLOAD_CHUNK_SIZE) as sources:
            container = await lifecycle.create(container_name, expiry_duration, sources)
    except ShareboxError as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    except Exception as e:
        logger.exception("Upload failed")
        return JSONResponse({"error": str(e) or "Server Error"}, status_code=500)

    return UploadResponse(
        share_link=lifecycle.share_link(container),
        container_name=container.display_name,
        expiry=container.expires_at,
    )
