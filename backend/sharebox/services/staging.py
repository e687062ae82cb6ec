"""Local staging of incoming uploads.

Each request stages into its own temporary directory, which is removed
whether the upload succeeds or fails.
"""
import logging
import re
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles
from fastapi import UploadFile

from sharebox.services.lifecycle import UploadSource

logger = logging.getLogger(__name__)

_SAFE = re.compile(r"[^a-zA-Z0-9.-]")


async def save_upload_file(upload_file: UploadFile, destination: Path, chunk_size: int) -> int:
    """Stream an upload to disk in chunks. Returns the number of bytes written."""
    size = 0
    async with aiofiles.open(destination, "wb") as out:
        while True:
            chunk = await upload_file.read(chunk_size)
            if not chunk:
                break
            size += len(chunk)
            await out.write(chunk)
    await upload_file.close()
    return size


@asynccontextmanager
async def staged_uploads(files: list[UploadFile], staging_dir: str, chunk_size: int):
    """Stage uploads to disk and yield UploadSources; the staged bytes are always removed."""
    root = Path(staging_dir)
    root.mkdir(parents=True, exist_ok=True)
    workdir = Path(tempfile.mkdtemp(prefix="upload-", dir=root))
    try:
        sources = []
        for upload in files:
            name = upload.filename or "unnamed"
            path = workdir / f"{uuid.uuid4().hex}-{_SAFE.sub('_', name)[-100:]}"
            size = await save_upload_file(upload, path, chunk_size)
            sources.append(UploadSource(name=name, path=path, size=size))
        yield sources
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
        logger.debug(f"Removed staging directory {workdir}")
