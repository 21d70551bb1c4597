import logging
import os
import shutil
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))
UPLOAD_URL_PREFIX = "/uploads"
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"}


def save_upload(upload: UploadFile) -> str:
    """Store an uploaded image and return the public path it is served from."""
    ext = Path(upload.filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        ext = ".jpg"
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    name = f"{uuid4().hex}{ext}"
    with open(UPLOAD_DIR / name, "wb") as out:
        shutil.copyfileobj(upload.file, out)
    logger.debug("Stored upload %s as %s", upload.filename, name)
    return f"{UPLOAD_URL_PREFIX}/{name}"
