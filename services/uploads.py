"""
Multipart upload persistence.

Validates an uploaded image (MIME type, size) and streams it into the
identity upload directory under a collision-resistant name.
"""
import logging
from pathlib import Path

from starlette.datastructures import UploadFile

from services.temp_files import TempImage, TempImageGuard
from utils.config import ALLOWED_UPLOAD_MIME_TYPES, MAX_UPLOAD_SIZE_BYTES
from utils.exceptions import UploadValidationError
from utils.image_manager import ensure_upload_dir, generate_upload_filename

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _size_limit_message(limit: int) -> str:
    return f"File size must be less than {limit // (1024 * 1024)}MB"


async def save_upload(
    upload: UploadFile,
    directory: Path,
    field_name: str,
    guard: TempImageGuard,
    max_size: int = MAX_UPLOAD_SIZE_BYTES,
) -> TempImage:
    """
    Persist an uploaded image and hand it to ``guard``.

    Raises:
        UploadValidationError: Wrong content type or file too large
    """
    content_type = (upload.content_type or "").lower()
    if content_type not in ALLOWED_UPLOAD_MIME_TYPES:
        raise UploadValidationError(
            "File validation error",
            f"Invalid file type '{content_type or 'unknown'}'. Only images are allowed.",
        )

    directory = ensure_upload_dir(directory)
    path = directory / generate_upload_filename(field_name, upload.filename)
    temp = guard.track(path)

    written = 0
    with open(path, "wb") as buffer:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_size:
                break
            buffer.write(chunk)

    if written > max_size:
        guard.discard()
        raise UploadValidationError("File too large", _size_limit_message(max_size))

    logger.info(f"Saved upload '{upload.filename}' as {path.name} ({written} bytes)")
    return temp
