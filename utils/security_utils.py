"""
Security utilities for photo upload validation and sanitization
"""
import re
import uuid
from pathlib import Path
from typing import Optional
from fastapi import HTTPException, UploadFile


# Security constants
ALLOWED_MIME_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
]

ALLOWED_EXTENSIONS = [".jpg", ".jpeg", ".png", ".gif", ".webp"]

# 10MB in bytes
MAX_FILE_SIZE = 10 * 1024 * 1024

PORTAL_PASSWORD_MIN_LENGTH = 6


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    Removes:
    - Directory separators (/ and \\)
    - Path traversal sequences (..)
    - Null bytes (\\x00)
    - Any other potentially dangerous characters

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for use in file paths
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    # Remove null bytes
    filename = filename.replace("\x00", "")

    # Remove directory separators
    filename = filename.replace("/", "").replace("\\", "")

    # Remove path traversal sequences
    while ".." in filename:
        filename = filename.replace("..", "")

    # Keep letters, numbers, dots, hyphens, underscores and spaces
    filename = re.sub(r'[^a-zA-Z0-9._\-\s]', '', filename)

    # Windows does not allow leading/trailing dots and spaces
    filename = filename.strip('. ')

    # Ensure filename is not empty after sanitization
    if not filename:
        raise ValueError("Filename is invalid after sanitization")

    # Limit filename length
    if len(filename) > 200:
        ext = Path(filename).suffix
        name_without_ext = Path(filename).stem[:200 - len(ext)]
        filename = name_without_ext + ext

    return filename


def get_file_extension(filename: str) -> str:
    """Extract file extension with leading dot (lowercase), or empty string"""
    return Path(filename).suffix.lower()


def stored_filename(original: str) -> str:
    """Unique name for a photo on disk; keeps the original extension."""
    return f"{uuid.uuid4().hex}{get_file_extension(original)}"


def validate_file_extension(filename: str) -> None:
    """
    Validate that file extension is in the whitelist.

    Raises:
        HTTPException: If extension is not allowed
    """
    ext = get_file_extension(filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"File extension '{ext}' is not allowed. Allowed extensions: {', '.join(ALLOWED_EXTENSIONS)}"
        )


def detect_mime_type_from_content(content: bytes) -> Optional[str]:
    """
    Detect image MIME type from file signatures (magic bytes).

    Args:
        content: File content bytes

    Returns:
        Detected MIME type or None if unknown
    """
    if not content:
        return None

    if content[:3] == b'\xff\xd8\xff':
        return "image/jpeg"

    if content[:8] == b'\x89PNG\r\n\x1a\n':
        return "image/png"

    if content[:6] in (b'GIF87a', b'GIF89a'):
        return "image/gif"

    # WEBP: RIFF....WEBP
    if content[:4] == b'RIFF' and content[8:12] == b'WEBP':
        return "image/webp"

    return None


def validate_file_content(content: bytes) -> str:
    """
    Validate file content (size and image signature).

    Args:
        content: File content bytes

    Returns:
        The detected MIME type

    Raises:
        HTTPException: If validation fails
    """
    if len(content) > MAX_FILE_SIZE:
        size_mb = len(content) / (1024 * 1024)
        max_mb = MAX_FILE_SIZE / (1024 * 1024)
        raise HTTPException(
            status_code=400,
            detail=f"File size ({size_mb:.2f}MB) exceeds maximum allowed size ({max_mb}MB)"
        )

    if len(content) == 0:
        raise HTTPException(
            status_code=400,
            detail="File is empty"
        )

    detected_mime = detect_mime_type_from_content(content)
    if detected_mime not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Only image files are allowed. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}"
        )
    return detected_mime


async def validate_uploaded_file(file: UploadFile) -> tuple[str, bytes, str]:
    """
    Comprehensive validation of an uploaded photo.

    This function:
    1. Sanitizes the filename
    2. Validates file extension
    3. Reads and validates file content (size and image signature)

    Args:
        file: FastAPI UploadFile object

    Returns:
        Tuple of (sanitized_filename, file_content, mime_type)

    Raises:
        HTTPException: If any validation fails
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    try:
        sanitized_filename = sanitize_filename(file.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    validate_file_extension(sanitized_filename)

    content = await file.read()
    mime_type = validate_file_content(content)

    await file.seek(0)

    return sanitized_filename, content, mime_type


def validate_password_strength(password: str) -> None:
    """
    Validate contractor password strength.

    Enforces:
    - Minimum length: 12 characters
    - At least one uppercase letter (A-Z)
    - At least one lowercase letter (a-z)
    - At least one digit (0-9)
    - At least one special character (!@#$%^&*(),.?":{}|<>])

    Raises:
        ValueError: If password does not meet strength requirements
    """
    if not password:
        raise ValueError("Password cannot be empty")

    # Check minimum length
    if len(password) < 12:
        raise ValueError("Password must be at least 12 characters long")

    # Check for uppercase letter
    if not re.search(r'[A-Z]', password):
        raise ValueError("Password must contain at least one uppercase letter (A-Z)")

    # Check for lowercase letter
    if not re.search(r'[a-z]', password):
        raise ValueError("Password must contain at least one lowercase letter (a-z)")

    # Check for digit
    if not re.search(r'[0-9]', password):
        raise ValueError("Password must contain at least one digit (0-9)")

    # Check for special character
    if not re.search(r'[!@#$%&*(),.?":{}|<>\[\]^]', password):
        raise ValueError("Password must contain at least one special character (!@#$%^&*(),.?\":{}|<>[])")


def validate_portal_password(password: str) -> None:
    """Client portal passwords only need a minimum length."""
    if not password or len(password) < PORTAL_PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PORTAL_PASSWORD_MIN_LENGTH} characters long")
