"""
Photo files on local disk under MEDIA_DIR
"""
import logging
from pathlib import Path

import aiofiles
from fastapi import HTTPException, UploadFile

from config.settings import MEDIA_DIR
from utils.security_utils import sanitize_filename, stored_filename, validate_uploaded_file

logger = logging.getLogger(__name__)

PROJECT_PHOTOS = "project_photos"
MILESTONE_PHOTOS = "milestone_photos"


def photo_dir(kind: str) -> Path:
    directory = MEDIA_DIR / kind
    directory.mkdir(parents=True, exist_ok=True)
    return directory


async def save_uploaded_photo(file: UploadFile, kind: str) -> dict:
    """
    Validate an uploaded image and write it under MEDIA_DIR/<kind>/.

    Returns:
        Dict with file_name (name on disk), original_name, file_size and mime_type
    """
    original_name, content, mime_type = await validate_uploaded_file(file)
    file_name = stored_filename(original_name)

    # Save file asynchronously using aiofiles (non-blocking I/O)
    async with aiofiles.open(photo_dir(kind) / file_name, "wb") as f:
        await f.write(content)

    logger.info(f"Photo stored: {file_name} ({len(content)} bytes, {mime_type})")
    return {
        "file_name": file_name,
        "original_name": original_name,
        "file_size": len(content),
        "mime_type": mime_type,
    }


def resolve_photo(kind: str, file_name: str) -> Path:
    """Path of a stored photo; 404 when it does not exist."""
    try:
        safe_name = sanitize_filename(file_name)
    except ValueError:
        raise HTTPException(status_code=404, detail="Photo not found")
    path = photo_dir(kind) / safe_name
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Photo not found")
    return path
