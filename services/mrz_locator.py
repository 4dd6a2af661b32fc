"""
MRZ Region Locator

Finds the machine readable zone on a document image with OpenCV
morphology and crops it out for OCR.

Approach:
- Blackhat reveals dark text on a light background
- A horizontal gradient + closing fuses the MRZ characters into one band
- The band is the lowest wide, flat contour that spans most of the page
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

from utils.config import (
    MRZ_CROP_PADDING,
    MRZ_LOCATOR_WORK_WIDTH,
    MRZ_MIN_ASPECT_RATIO,
    MRZ_MIN_WIDTH_RATIO,
)
from utils.exceptions import MrzCropError

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]  # x, y, w, h

RECT_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (13, 5))
SQUARE_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (21, 21))


@dataclass
class CroppedRegion:
    """Grayscale MRZ crop and its box in full-resolution coordinates."""
    image: np.ndarray
    box: Box


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def _band_mask(gray: np.ndarray) -> Optional[np.ndarray]:
    """Binary mask where the MRZ band shows up as a solid blob."""
    blurred = cv2.GaussianBlur(gray, (3, 3), 0)
    blackhat = cv2.morphologyEx(blurred, cv2.MORPH_BLACKHAT, RECT_KERNEL)

    grad = np.absolute(cv2.Sobel(blackhat, ddepth=cv2.CV_32F, dx=1, dy=0, ksize=-1))
    min_val, max_val = float(grad.min()), float(grad.max())
    if max_val - min_val == 0:
        return None
    grad = (255 * ((grad - min_val) / (max_val - min_val))).astype("uint8")

    grad = cv2.morphologyEx(grad, cv2.MORPH_CLOSE, RECT_KERNEL)
    thresh = cv2.threshold(grad, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)[1]
    thresh = cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, SQUARE_KERNEL)
    return cv2.erode(thresh, None, iterations=2)


def find_candidates(mask: np.ndarray) -> List[Box]:
    """Bounding boxes in ``mask`` shaped like an MRZ band."""
    height, width = mask.shape[:2]
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    candidates = []
    for contour in contours:
        x, y, w, h = cv2.boundingRect(contour)
        if h == 0:
            continue
        aspect = w / float(h)
        width_ratio = w / float(width)
        if aspect < MRZ_MIN_ASPECT_RATIO or width_ratio < MRZ_MIN_WIDTH_RATIO:
            continue
        if h > height * 0.5:
            continue
        candidates.append((x, y, w, h))
    return candidates


def scale_box(box: Box, scale: float, shape: Tuple[int, int], padding: float = MRZ_CROP_PADDING) -> Box:
    """
    Map a box from the working image back to full resolution, with padding.

    Args:
        box: (x, y, w, h) on the working image
        scale: working width / full width
        shape: (height, width) of the full-resolution image
        padding: Padding as a fraction of the full width
    """
    full_h, full_w = shape
    x, y, w, h = (int(round(v / scale)) for v in box)
    pad = int(full_w * padding)

    x0 = max(0, x - pad)
    y0 = max(0, y - pad)
    x1 = min(full_w, x + w + pad)
    y1 = min(full_h, y + h + pad)
    return x0, y0, x1 - x0, y1 - y0


def locate_mrz(image: np.ndarray) -> CroppedRegion:
    """
    Crop the MRZ region out of a document image.

    Args:
        image: Document image (BGR or grayscale)

    Returns:
        CroppedRegion with the grayscale crop

    Raises:
        MrzCropError: If no MRZ-shaped region is found
    """
    gray = to_grayscale(image)
    full_h, full_w = gray.shape[:2]
    if full_w == 0 or full_h == 0:
        raise MrzCropError(error="Empty image")

    scale = MRZ_LOCATOR_WORK_WIDTH / float(full_w)
    work = cv2.resize(gray, (MRZ_LOCATOR_WORK_WIDTH, max(1, int(full_h * scale))), interpolation=cv2.INTER_AREA)

    mask = _band_mask(work)
    if mask is None:
        raise MrzCropError(error="Image has no text-like structure")

    candidates = find_candidates(mask)
    if not candidates:
        raise MrzCropError(error="No MRZ-shaped region found")

    # MRZ sits at the bottom of the data page: prefer the lowest, then the widest
    best = max(candidates, key=lambda b: (b[1] + b[3], b[2]))
    x, y, w, h = scale_box(best, scale, (full_h, full_w))
    logger.info(f"MRZ area cropped successfully at x={x} y={y} w={w} h={h}")

    return CroppedRegion(image=gray[y:y + h, x:x + w].copy(), box=(x, y, w, h))
