"""Shared FastAPI dependencies."""
from pathlib import Path

from utils.config import IDENTITY_UPLOAD_DIR


def get_upload_dir() -> Path:
    """Directory for identity document images (overridden in tests)."""
    return IDENTITY_UPLOAD_DIR
