"""Container request/response schemas."""
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from sharebox.schemas.base import CamelModel


class UploadResponse(CamelModel):
    success: bool = True
    share_link: str
    container_name: str
    expiry: datetime


class ErrorResponse(BaseModel):
    error: str


class FileViewResponse(CamelModel):
    id: uuid.UUID
    original_name: str
    size_bytes: int
    download_name: str
    download_url: Optional[str] = None
    corrupt: bool = False


class ContainerViewResponse(CamelModel):
    public_id: str
    display_name: str
    created_at: datetime
    expires_at: datetime
    files: list[FileViewResponse]
