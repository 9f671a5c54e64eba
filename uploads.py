"""
Local image uploads

One image per request, written to the upload directory under a
timestamp-based name and served back from /uploads.
"""

import logging
import os
import time
import uuid
from pathlib import Path

from fastapi import HTTPException, UploadFile

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
ALLOWED_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif"}
MAX_FILE_SIZE = 50 * 1024 * 1024
CHUNK_SIZE = 1024 * 1024
URL_PREFIX = "uploads"  # static mount, independent of the directory name


class UploadSink:
    def __init__(self, directory: str):
        self.directory = Path(directory)

    def ensure_dir(self):
        self.directory.mkdir(parents=True, exist_ok=True)

    def validate(self, file: UploadFile):
        ext = os.path.splitext(file.filename or "")[1].lower()
        content_type = (file.content_type or "").lower()
        if ext not in ALLOWED_EXTENSIONS or content_type not in ALLOWED_TYPES:
            raise HTTPException(status_code=400, detail="Only images are allowed")
        return ext

    def save(self, file: UploadFile) -> str:
        """Store the file and return its server-relative path, e.g. uploads/1700000000000-ab12cd34.png"""
        ext = self.validate(file)
        self.ensure_dir()
        filename = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
        target = self.directory / filename

        size = 0
        file.file.seek(0)
        with open(target, "wb") as buffer:
            while True:
                chunk = file.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > MAX_FILE_SIZE:
                    break
                buffer.write(chunk)
        if size > MAX_FILE_SIZE:
            target.unlink(missing_ok=True)
            raise HTTPException(status_code=400, detail="File too large (max 50MB)")

        logger.info("Stored upload %s (%d bytes)", filename, size)
        return f"{URL_PREFIX}/{filename}"

    def discard(self, path):
        """Remove a previously stored upload; unknown or foreign paths are ignored"""
        if not path:
            return
        target = self.directory / Path(path).name
        try:
            target.unlink()
            logger.info("Removed upload %s", target.name)
        except FileNotFoundError:
            pass
