"""
Image Acquisition Service

Resolves the document image of an MRZ request from one of three input shapes:

1. ``data:image/...;base64,...`` URI in the ``image`` field
2. ``http(s)://`` URL in the ``image`` field
3. Multipart file upload (already persisted by the upload handler)

Every file written here is registered with the request's ``TempImageGuard``
before it is decoded, so a decode failure never leaves it behind.
"""
import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import requests
from fastapi.concurrency import run_in_threadpool

from services.temp_files import TempImage, TempImageGuard
from utils.config import REMOTE_IMAGE_TIMEOUT_SECONDS, REMOTE_IMAGE_VERIFY_TLS
from utils.exceptions import ImageAcquisitionError
from utils.image_manager import OpenCVImageBackend, ensure_upload_dir, generate_temp_filename

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:image"
DATA_URI_HEADER = re.compile(r"^data:image/(\w+);base64,")
REJECTED_PATH_EXTENSIONS = ("png", "jpg", "jpeg")

ORIGIN_BASE64 = "base64"
ORIGIN_REMOTE_URL = "remote-url"
ORIGIN_UPLOAD = "upload"


@dataclass
class AcquiredImage:
    """Decoded document image plus the file that backs it."""
    image: np.ndarray
    temp_file: TempImage
    origin: str


def classify_image_value(value: Optional[str]) -> Optional[str]:
    """
    Decide how a string ``image`` field should be interpreted.

    Returns:
        ORIGIN_BASE64, ORIGIN_REMOTE_URL, "invalid" for bare image paths,
        or None when the request must carry an upload instead
    """
    text = "" if value is None else str(value)
    if text.startswith(DATA_URI_PREFIX):
        return ORIGIN_BASE64
    if text.startswith("http"):
        return ORIGIN_REMOTE_URL
    if any(text.lower().endswith(f".{ext}") for ext in REJECTED_PATH_EXTENSIONS):
        return "invalid"
    return None


def decode_data_uri(value: str) -> tuple:
    """
    Split a base64 data URI into (bytes, extension).

    Raises:
        ValueError: If the payload is not valid base64
    """
    match = DATA_URI_HEADER.match(value)
    extension = match.group(1) if match else "jpg"
    payload = value[match.end():] if match else value.split(",", 1)[-1]
    try:
        return base64.b64decode(payload, validate=True), extension
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}")


def _download(url: str) -> bytes:
    # requests' timeout applies per socket operation, not to the whole body
    response = requests.get(
        url,
        timeout=REMOTE_IMAGE_TIMEOUT_SECONDS,
        verify=REMOTE_IMAGE_VERIFY_TLS,
    )
    response.raise_for_status()
    return response.content


async def _fetch(url: str, timeout: float) -> bytes:
    """Download in the default executor, bounded end to end by ``timeout``."""
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(loop.run_in_executor(None, _download, url), timeout=timeout)
    except asyncio.TimeoutError:
        raise requests.Timeout(f"Download timed out after {timeout:.0f}s")


def _write(directory: Path, filename: str, data: bytes, guard: TempImageGuard) -> TempImage:
    path = ensure_upload_dir(directory) / filename
    temp = guard.track(path)
    path.write_bytes(data)
    return temp


async def _from_base64(value, directory, guard, backend) -> AcquiredImage:
    logger.info("Loading image base64", extra={"origin": ORIGIN_BASE64})
    try:
        data, extension = decode_data_uri(value)
        temp = _write(directory, generate_temp_filename("temp", extension), data, guard)
        image = await run_in_threadpool(backend.decode, data)
    except (ValueError, OSError) as e:
        logger.warning(f"Load base64 image error: {e}")
        raise ImageAcquisitionError("Failed to load base64 image", error=str(e))
    return AcquiredImage(image=image, temp_file=temp, origin=ORIGIN_BASE64)


async def _from_url(url, directory, guard, backend) -> AcquiredImage:
    logger.info(f"Loading image from http: {url}", extra={"origin": ORIGIN_REMOTE_URL})
    if not REMOTE_IMAGE_VERIFY_TLS:
        logger.warning("TLS certificate verification is disabled for remote image fetch")
    try:
        data = await _fetch(url, REMOTE_IMAGE_TIMEOUT_SECONDS)
        image = await run_in_threadpool(backend.decode, data)
        temp = _write(directory, generate_temp_filename("temp_http", ".jpg"), data, guard)
    except (requests.RequestException, ValueError, OSError) as e:
        logger.warning(f"Load HTTP image error: {e}")
        raise ImageAcquisitionError("Failed to load image from HTTP URL", error=str(e))
    return AcquiredImage(image=image, temp_file=temp, origin=ORIGIN_REMOTE_URL)


async def _from_upload(uploaded, backend) -> AcquiredImage:
    try:
        if uploaded is None:
            raise FileNotFoundError("No file uploaded")
        logger.info(f"Loading image from file path: {uploaded.path}", extra={"origin": ORIGIN_UPLOAD})
        if not uploaded.path.exists():
            raise FileNotFoundError(f"Uploaded file missing: {uploaded.filename}")
        image = await run_in_threadpool(backend.read, uploaded.path)
    except (ValueError, OSError) as e:
        logger.warning(f"Load binary image error: {e}")
        raise ImageAcquisitionError("Failed to load uploaded image", error=str(e))
    return AcquiredImage(image=image, temp_file=uploaded, origin=ORIGIN_UPLOAD)


async def acquire_image(
    value: Optional[str],
    uploaded: Optional[TempImage],
    directory: Path,
    guard: TempImageGuard,
    backend: Optional[OpenCVImageBackend] = None,
) -> AcquiredImage:
    """
    Resolve and decode the document image for an MRZ request.

    Args:
        value: String ``image`` field (data URI or URL), if any
        uploaded: Upload already persisted and tracked by ``guard``, if any
        directory: Identity upload directory for temporary files
        guard: Owner of any file written for this request
        backend: Image decoding capability

    Raises:
        ImageAcquisitionError: With a message specific to the input shape
    """
    backend = backend or OpenCVImageBackend()
    kind = classify_image_value(value)

    if kind == ORIGIN_BASE64:
        return await _from_base64(value, directory, guard, backend)
    if kind == ORIGIN_REMOTE_URL:
        return await _from_url(value, directory, guard, backend)
    if kind == "invalid":
        raise ImageAcquisitionError("Invalid image format or path")
    return await _from_upload(uploaded, backend)
