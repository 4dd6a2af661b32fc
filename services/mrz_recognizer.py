"""
MRZ Text Recognizer

Runs Tesseract over the cropped MRZ region, restricted to the MRZ alphabet
(A-Z, 0-9 and the "<" filler).

Each call gets its own engine session: the configuration and a scratch
directory are created on entry and torn down on exit, whatever the outcome.
"""
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np
import pytesseract

from utils.config import (
    MRZ_CHAR_WHITELIST,
    OCR_TIMEOUT_SECONDS,
    TESSDATA_DIR,
    TESSERACT_CMD,
    TESSERACT_LANG,
)
from utils.exceptions import MrzRecognitionError
from utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

if TESSERACT_CMD:
    pytesseract.pytesseract.tesseract_cmd = TESSERACT_CMD

MIN_OCR_WIDTH = 1000  # Thin MRZ bands are upscaled to at least this width


class TesseractMrzEngine:
    """Per-call Tesseract session configured for MRZ text."""

    def __init__(
        self,
        lang: str = TESSERACT_LANG,
        whitelist: str = MRZ_CHAR_WHITELIST,
        tessdata_dir: Optional[str] = TESSDATA_DIR,
        timeout: float = OCR_TIMEOUT_SECONDS,
    ):
        self.lang = lang
        self.whitelist = whitelist
        self.tessdata_dir = tessdata_dir
        self.timeout = timeout
        self.config: Optional[str] = None
        self._workdir: Optional[Path] = None

    def __enter__(self) -> "TesseractMrzEngine":
        options = [
            "--oem 1",
            "--psm 6",
            f"-c tessedit_char_whitelist={self.whitelist}",
            "-c load_system_dawg=0",
            "-c load_freq_dawg=0",
        ]
        if self.tessdata_dir:
            options.append(f'--tessdata-dir "{self.tessdata_dir}"')
        self.config = " ".join(options)
        self._workdir = Path(tempfile.mkdtemp(prefix="mrz_ocr_"))
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
        self.config = None
        return False

    def recognize(self, region: np.ndarray) -> str:
        """Run OCR on a prepared grayscale MRZ crop and return the raw text."""
        if self._workdir is None:
            raise RuntimeError("Engine used outside of its session")
        image_path = self._workdir / "mrz.png"
        cv2.imwrite(str(image_path), region)
        return pytesseract.image_to_string(
            str(image_path),
            lang=self.lang,
            config=self.config,
            timeout=self.timeout,
        )


def prepare_region(region: np.ndarray) -> np.ndarray:
    """Upscale and binarize an MRZ crop for OCR."""
    gray = region if region.ndim == 2 else cv2.cvtColor(region, cv2.COLOR_BGR2GRAY)
    h, w = gray.shape[:2]
    if 0 < w < MIN_OCR_WIDTH:
        scale = MIN_OCR_WIDTH / float(w)
        gray = cv2.resize(gray, (MIN_OCR_WIDTH, int(h * scale)), interpolation=cv2.INTER_CUBIC)
    return cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)[1]


def split_mrz_lines(text: str) -> List[str]:
    """Non-empty OCR lines with stray spaces removed."""
    lines = []
    for line in (text or "").splitlines():
        cleaned = line.replace(" ", "").strip().upper()
        if cleaned:
            lines.append(cleaned)
    return lines


@log_execution_time
def recognize_mrz(region: np.ndarray) -> str:
    """
    Read the MRZ text from a cropped region.

    Args:
        region: Grayscale MRZ crop

    Returns:
        MRZ lines joined by newlines

    Raises:
        MrzRecognitionError: On engine failure/timeout, or when nothing was read
    """
    try:
        with TesseractMrzEngine() as engine:
            raw_text = engine.recognize(prepare_region(region))
    except (pytesseract.TesseractError, RuntimeError, OSError) as e:
        logger.warning(f"MRZ recognition error: {e}")
        raise MrzRecognitionError(error=str(e))

    text = "\n".join(split_mrz_lines(raw_text))
    if not text:
        raise MrzRecognitionError("No MRZ data found in image")

    logger.info(f"MRZ detected: {text!r}")
    return text


def tesseract_available() -> bool:
    """Check whether the Tesseract binary can be invoked."""
    try:
        pytesseract.get_tesseract_version()
        return True
    except (pytesseract.TesseractNotFoundError, OSError):
        return False
