"""
File Storage
============
Helpers for files kept under the configured upload directory.

Stored paths are always relative to the upload root (for example
``documents/document_new_1714000000000.pdf``) and are resolved strictly
inside it.
"""

import logging
import re
import secrets
import time
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from fastapi import UploadFile

import metrics as app_metrics
from config import get_settings
from exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

DOCUMENTS_DIR = "documents"
EQUIPMENT_DIR = "equipment"
PROJECTS_DIR = "projects"
ATTACHMENTS_DIR = "attachments"

SUBDIRECTORIES = (DOCUMENTS_DIR, EQUIPMENT_DIR, PROJECTS_DIR, ATTACHMENTS_DIR)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_COPY_CHUNK = 1024 * 1024


def upload_root() -> Path:
    return Path(get_settings().upload_dir).resolve()


def ensure_upload_dirs() -> Path:
    """Create the upload root and its subdirectories."""
    root = upload_root()
    for sub in SUBDIRECTORIES:
        (root / sub).mkdir(parents=True, exist_ok=True)
    return root


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def unique_name(prefix: str, extension: str = "") -> str:
    """`<prefix><ms timestamp>-<random><ext>`, never derived from user input."""
    extension = sanitize_extension(extension)
    return f"{prefix}{timestamp_ms()}-{secrets.randbelow(10**9)}{extension}"


def sanitize_extension(extension: Optional[str]) -> str:
    """Normalize to a lower-case ``.ext`` or an empty string."""
    if not extension:
        return ""
    ext = _UNSAFE_CHARS.sub("", extension.lower().lstrip("."))
    return f".{ext}" if ext else ""


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client supplied name to a safe single path component.

    Raises:
        ValidationError: Empty name or an attempt at path traversal
    """
    if not filename or not filename.strip():
        raise ValidationError("Filename is required", field="filename")

    if "/" in filename or "\\" in filename or ".." in filename:
        raise ValidationError("Invalid filename", field="filename", value=filename)

    safe = _UNSAFE_CHARS.sub("_", filename.strip())
    if safe.startswith("."):
        raise ValidationError("Invalid filename", field="filename", value=filename)
    return safe


def resolve_stored_path(relative_path: str) -> Path:
    """
    Absolute location of a stored file.

    Raises:
        StorageError: The path escapes the upload root
    """
    root = upload_root()
    candidate = (root / relative_path.lstrip("/\\")).resolve()
    if candidate != root and root not in candidate.parents:
        raise StorageError("Path escapes the upload directory", path=relative_path)
    return candidate


def write_stream(source: BinaryIO, relative_path: str, max_bytes: Optional[int] = None, kind: str = "file") -> int:
    """
    Copy a file-like object into storage.

    Returns:
        Number of bytes written

    Raises:
        ValidationError: The stream exceeds `max_bytes`. The partial file is removed.
        StorageError: The file could not be written
    """
    target = resolve_stored_path(relative_path)
    target.parent.mkdir(parents=True, exist_ok=True)

    written = 0
    try:
        with open(target, "wb") as dest:
            while True:
                chunk = source.read(_COPY_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if max_bytes is not None and written > max_bytes:
                    raise ValidationError(
                        f"File exceeds the maximum size of {max_bytes // (1024 * 1024)} MB",
                        field="file",
                    )
                dest.write(chunk)
    except ValidationError:
        target.unlink(missing_ok=True)
        raise
    except OSError as e:
        target.unlink(missing_ok=True)
        raise StorageError(f"Failed to save file: {e}", path=relative_path, original_error=e) from e

    app_metrics.uploaded_bytes_total.labels(kind=kind).inc(written)
    logger.info(f"Stored {kind}: path={relative_path}, size={written}")
    return written


def write_bytes(data: bytes, relative_path: str, kind: str = "file") -> int:
    target = resolve_stored_path(relative_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        target.write_bytes(data)
    except OSError as e:
        raise StorageError(f"Failed to save file: {e}", path=relative_path, original_error=e) from e

    app_metrics.uploaded_bytes_total.labels(kind=kind).inc(len(data))
    return len(data)


def save_upload(
    upload: UploadFile,
    subdir: str,
    filename: str,
    max_bytes: Optional[int] = None,
    kind: str = "file",
) -> Tuple[str, int]:
    """
    Store a multipart upload as `<subdir>/<filename>`.

    Returns:
        (relative path, size in bytes)
    """
    relative = f"{subdir}/{filename}" if subdir else filename
    size = write_stream(upload.file, relative, max_bytes=max_bytes, kind=kind)
    return relative, size


def remove_file(relative_path: Optional[str]) -> bool:
    """Delete a stored file. Missing files and bad paths are logged, not raised."""
    if not relative_path:
        return False
    try:
        target = resolve_stored_path(relative_path)
    except StorageError:
        logger.warning(f"Refusing to delete file outside upload root: {relative_path}")
        return False

    if not target.is_file():
        return False

    try:
        target.unlink()
        return True
    except OSError as e:
        logger.warning(f"Failed to delete stored file {relative_path}: {e}")
        return False


def public_url(relative_path: str) -> str:
    return f"/uploads/{relative_path.lstrip('/')}"


def save_image(upload: Optional[UploadFile], subdir: str, prefix: str) -> dict:
    """
    Store an uploaded image as `<subdir>/<prefix><ts>-<rand><ext>`.

    Returns:
        Dict with url, filename, size and mimetype

    Raises:
        ValidationError: Missing file, non-image content or over the image size limit
    """
    if upload is None or not upload.filename:
        raise ValidationError("No image uploaded", field="image")

    mimetype = upload.content_type or ""
    if not mimetype.startswith("image/"):
        raise ValidationError("Only image files are allowed", field="image", value=mimetype)

    filename = unique_name(prefix, Path(upload.filename).suffix)
    relative, size = save_upload(
        upload,
        subdir,
        filename,
        max_bytes=get_settings().max_image_size_mb * 1024 * 1024,
        kind="image",
    )
    return {"url": public_url(relative), "filename": filename, "size": size, "mimetype": mimetype}
