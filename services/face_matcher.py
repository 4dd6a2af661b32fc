"""
Face Matcher Service for comparing a personal photo with a passport photo.

Uses 128-d dlib face descriptors compared by Euclidean distance: the
smaller the distance, the more likely both photos show the same person.
"""
import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np

from services.model_context import ModelContext
from utils.config import (
    FACE_MATCH_LEVEL_FALLBACK,
    FACE_MATCH_LEVELS,
    FACE_MATCH_THRESHOLD,
    FACE_TIMEOUT_SECONDS,
)
from utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

NO_FACE_PERSONAL = "No face in personal photo"
NO_FACE_PASSPORT = "No face in passport photo"


def euclidean_distance(descriptor1: np.ndarray, descriptor2: np.ndarray) -> float:
    """Euclidean distance between two face descriptors."""
    return float(np.linalg.norm(np.asarray(descriptor1) - np.asarray(descriptor2)))


def match_level(distance: float) -> str:
    """
    Bucket a descriptor distance into a human-readable match level.

    < 0.4 Excellent, < 0.5 Good, < 0.6 Moderate, otherwise Poor.
    """
    for upper_bound, label in FACE_MATCH_LEVELS:
        if distance < upper_bound:
            return label
    return FACE_MATCH_LEVEL_FALLBACK


def build_comparison(distance: float, backend_name: str) -> Dict[str, Any]:
    """FaceComparisonResult for a computed distance."""
    return {
        "success": True,
        "similarity": f"{1 - distance:.4f}",
        "distance": f"{distance:.4f}",
        "isMatch": distance < FACE_MATCH_THRESHOLD,
        "matchLevel": match_level(distance),
        "tensorflowBackend": backend_name,
    }


async def _describe_both(personal_path: Path, passport_path: Path, context: ModelContext):
    loop = asyncio.get_running_loop()
    read_rgb = context.backend.read_rgb
    describe = context.extractor.get_descriptors

    personal_image, passport_image = await asyncio.gather(
        loop.run_in_executor(None, partial(read_rgb, personal_path)),
        loop.run_in_executor(None, partial(read_rgb, passport_path)),
    )
    return await asyncio.gather(
        loop.run_in_executor(None, partial(describe, personal_image)),
        loop.run_in_executor(None, partial(describe, passport_image)),
    )


@log_execution_time
async def compare_faces(
    personal_path: Union[str, Path],
    passport_path: Union[str, Path],
    context: ModelContext,
    timeout: float = FACE_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Compare the face in a personal photo with the face in a passport photo.

    Both images are loaded concurrently, then described concurrently. Only
    the first face found in each image is compared.

    Args:
        personal_path: Uploaded personal photo
        passport_path: Reference passport photo
        context: Application model context (initialized on demand)
        timeout: Bound for loading + describing both images

    Returns:
        FaceComparisonResult, or ``{"success": False, "message": ...}`` when
        either image has no face

    Raises:
        ModelLoadError: If the face models cannot be loaded
        asyncio.TimeoutError: If the comparison exceeds ``timeout``
    """
    await context.ensure_initialized()

    personal_faces, passport_faces = await asyncio.wait_for(
        _describe_both(Path(personal_path), Path(passport_path), context),
        timeout=timeout,
    )

    if len(personal_faces) == 0:
        return {"success": False, "message": NO_FACE_PERSONAL}
    if len(passport_faces) == 0:
        return {"success": False, "message": NO_FACE_PASSPORT}

    distance = euclidean_distance(personal_faces[0], passport_faces[0])
    logger.info(f"Face distance {distance:.4f} ({match_level(distance)})")
    return build_comparison(distance, context.backend_name)
