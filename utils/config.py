"""Configuration settings for the identity verification service."""
import os
from pathlib import Path

# Base directories
BASE_DIR = Path(__file__).parent.parent
UPLOADS_DIR = Path(os.environ.get("UPLOADS_DIR", str(BASE_DIR / "uploads")))
IDENTITY_UPLOAD_DIR = UPLOADS_DIR / "identity"

# Runtime environment ("development", "staging", "production")
APP_ENV = os.environ.get("APP_ENV", "development").lower()
IS_PRODUCTION = APP_ENV == "production"

# Logging configuration
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_JSON_FORMAT = os.environ.get("LOG_JSON_FORMAT", "true").lower() == "true"


# Upload handling
MAX_UPLOAD_SIZE_BYTES = int(os.environ.get("MAX_UPLOAD_SIZE_BYTES", str(5 * 1024 * 1024)))
ALLOWED_UPLOAD_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/bmp",
    "image/webp",
}
SUPPORTED_IMAGE_FORMATS = [".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp"]

# Remote image fetch
REMOTE_IMAGE_TIMEOUT_SECONDS = float(os.environ.get("REMOTE_IMAGE_TIMEOUT_SECONDS", "15"))
# Set to "false" only for trusted internal hosts with self-signed certificates
REMOTE_IMAGE_VERIFY_TLS = os.environ.get("REMOTE_IMAGE_VERIFY_TLS", "true").lower() == "true"


# OCR Settings (Tesseract)
TESSERACT_CMD = os.environ.get("TESSERACT_CMD")  # None = look up on PATH
TESSERACT_LANG = os.environ.get("TESSERACT_LANG", "eng")
TESSDATA_DIR = os.environ.get("TESSDATA_DIR")
MRZ_CHAR_WHITELIST = "<0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
OCR_TIMEOUT_SECONDS = float(os.environ.get("OCR_TIMEOUT_SECONDS", "30"))
# Upper bound for any single blocking MRZ stage (locator, OCR)
MRZ_STAGE_TIMEOUT_SECONDS = float(os.environ.get("MRZ_STAGE_TIMEOUT_SECONDS", "45"))

# MRZ region detection
MRZ_LOCATOR_WORK_WIDTH = 900  # Width the locator resizes to before morphology
MRZ_MIN_ASPECT_RATIO = 5.0  # MRZ band is much wider than tall
MRZ_MIN_WIDTH_RATIO = 0.6  # Band must span at least 60% of the document width
MRZ_CROP_PADDING = 0.03  # Padding around the detected band (fraction of width)


# Face Recognition Settings
FACE_DETECTION_MODEL = os.environ.get("FACE_DETECTION_MODEL", "hog")  # "hog" (CPU) or "cnn"
FACE_TIMEOUT_SECONDS = float(os.environ.get("FACE_TIMEOUT_SECONDS", "60"))
FACE_MATCH_THRESHOLD = 0.6  # Euclidean distance below this is a match

# (upper bound, label) - first bucket whose bound exceeds the distance wins
FACE_MATCH_LEVELS = [
    (0.4, "Excellent Match"),
    (0.5, "Good Match"),
    (0.6, "Moderate Match"),
]
FACE_MATCH_LEVEL_FALLBACK = "Poor Match"
