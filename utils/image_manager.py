"""
Image management utilities for decoding, saving, and naming document images.
"""
import random
import re
import string
import time
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import cv2
import numpy as np

from .config import SUPPORTED_IMAGE_FORMATS

MAX_FILENAME_LENGTH = 100
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


class OpenCVImageBackend:
    """
    Image decode/encode capability backed by OpenCV.

    Passed explicitly to the components that need to turn bytes or files
    into pixel arrays, so they never depend on process-wide image state.
    """

    name = "opencv"

    def decode(self, data: bytes) -> np.ndarray:
        """Decode encoded image bytes into a BGR array."""
        nparr = np.frombuffer(data, np.uint8)
        img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        if img is None:
            raise ValueError("Could not decode image from bytes")
        return img

    def read(self, path: Union[str, Path]) -> np.ndarray:
        """Read an image file as BGR."""
        # imdecode instead of imread so non-ASCII paths work everywhere
        return self.decode(Path(path).read_bytes())

    def read_rgb(self, path: Union[str, Path]) -> np.ndarray:
        """Read an image file as RGB (the layout dlib expects)."""
        return cv2.cvtColor(self.read(path), cv2.COLOR_BGR2RGB)

    def encode(self, image: np.ndarray, extension: str = ".png") -> bytes:
        """Encode an array to image bytes in the given format."""
        ok, buffer = cv2.imencode(extension, image)
        if not ok:
            raise ValueError(f"Could not encode image as {extension}")
        return buffer.tobytes()


# =============================================================================
# FILE NAMING
# =============================================================================

def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _random_suffix(length: int) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choices(alphabet, k=length))


def normalize_extension(extension: Optional[str], default: str = ".jpg") -> str:
    """Return a lowercase, dotted, supported image extension."""
    if not extension:
        return default
    extension = extension.lower()
    if not extension.startswith("."):
        extension = f".{extension}"
    if extension == ".jpeg":
        return ".jpg"
    return extension if extension in SUPPORTED_IMAGE_FORMATS else default


def sanitize_filename(filename: str) -> str:
    """
    Make a string safe to use as a filename.

    Every character outside [A-Za-z0-9._-] becomes "_", runs of underscores
    collapse to one, and the result is cut to 100 characters.
    """
    cleaned = _UNSAFE_CHARS.sub("_", filename)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    return cleaned[:MAX_FILENAME_LENGTH]


def generate_passport_filename(fields: Mapping[str, Any], extension: str = ".jpg") -> str:
    """
    Build the retained filename for an identified document image.

    Uses first name, last name and document number when all are known,
    the document number alone otherwise, and a random suffix when nothing
    identifying is available.
    """
    timestamp = _timestamp_ms()
    first_name = fields.get("firstName")
    last_name = fields.get("lastName")
    number = fields.get("documentNumber")
    extension = normalize_extension(extension)

    if first_name and last_name and number:
        return sanitize_filename(f"{first_name}_{last_name}_{number}_{timestamp}") + extension
    if number:
        return sanitize_filename(f"passport_{number}_{timestamp}") + extension
    return f"passport_{timestamp}_{_random_suffix(6)}{extension}"


def generate_temp_filename(prefix: str, extension: str = ".jpg") -> str:
    """Collision-resistant name for a request-owned temporary file."""
    return f"{prefix}_{_timestamp_ms()}_{_random_suffix(9)}{normalize_extension(extension)}"


def generate_upload_filename(field_name: str, original_filename: Optional[str]) -> str:
    """Name for a multipart upload: ``<field>-<ms>-<random><ext>``."""
    extension = Path(original_filename or "").suffix
    unique_suffix = f"{_timestamp_ms()}-{random.randint(0, 10**9)}"
    return f"{sanitize_filename(field_name)}-{unique_suffix}{normalize_extension(extension)}"


def ensure_upload_dir(directory: Union[str, Path]) -> Path:
    """Create the upload directory tree if needed (safe to call concurrently)."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory
