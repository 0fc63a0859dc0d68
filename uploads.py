import logging
import os
import shutil
from pathlib import Path
from typing import Iterable
from uuid import uuid4

from fastapi import HTTPException, UploadFile

from config import settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"}
URL_PREFIX = "/uploads/"


def upload_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_upload(file: UploadFile) -> str:
    """Store an uploaded image under a unique name and return its public URL."""
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {ext or 'unknown'}")

    filename = f"{uuid4().hex}{ext}"
    target = upload_dir() / filename
    with target.open("wb") as out:
        shutil.copyfileobj(file.file, out)

    if target.stat().st_size > settings.MAX_UPLOAD_MB * 1024 * 1024:
        target.unlink()
        raise HTTPException(status_code=400, detail=f"File exceeds {settings.MAX_UPLOAD_MB}MB")
    logger.info("Stored upload %s", filename)
    return URL_PREFIX + filename


def remove_upload(url: str) -> bool:
    # External URLs are not ours to delete
    if not url or not url.startswith(URL_PREFIX):
        return False
    target = upload_dir() / os.path.basename(url)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    logger.info("Removed upload %s", target.name)
    return True


def remove_uploads(urls: Iterable[str]) -> int:
    return sum(1 for url in urls if remove_upload(url))
