"""
MRZ reading pipeline.

Acquisition -> Region Locator -> Text Recognizer -> Grammar Parser ->
Result Assembler, run sequentially for one request.

Each stage either returns its output or raises its own ``AppError``
subclass, which ends the pipeline. The request's image file is owned by a
single ``TempImageGuard`` so it is deleted on every exit path unless the
assembler retained it.
"""
import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Dict, Optional

from starlette.datastructures import UploadFile

from services.image_acquisition import acquire_image
from services.mrz_locator import CroppedRegion, locate_mrz
from services.mrz_parser import extract_mrz_lines, parse_mrz
from services.mrz_recognizer import recognize_mrz, split_mrz_lines
from services.mrz_result import assemble_identification
from services.temp_files import TempImageGuard
from services.uploads import save_upload
from utils.config import MRZ_STAGE_TIMEOUT_SECONDS
from utils.exceptions import MrzCropError, MrzRecognitionError
from utils.image_manager import OpenCVImageBackend
from utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)

UPLOAD_FIELD_NAME = "image"


async def _run_bounded(func, arg, timeout: float):
    """Run a blocking stage in the default executor; on timeout the worker is abandoned."""
    loop = asyncio.get_running_loop()
    return await asyncio.wait_for(loop.run_in_executor(None, partial(func, arg)), timeout=timeout)


async def _locate(image, timeout: float) -> CroppedRegion:
    try:
        return await _run_bounded(locate_mrz, image, timeout)
    except asyncio.TimeoutError:
        logger.warning("MRZ cropping timed out", extra={"stage": "locate"})
        raise MrzCropError(error=f"Timed out after {timeout:.0f}s")


async def _recognize(region: CroppedRegion, timeout: float) -> str:
    try:
        return await _run_bounded(recognize_mrz, region.image, timeout)
    except asyncio.TimeoutError:
        logger.warning("MRZ recognition timed out", extra={"stage": "recognize"})
        raise MrzRecognitionError(error=f"Timed out after {timeout:.0f}s")


@log_execution_time
async def read_mrz(
    value: Optional[str],
    upload: Optional[UploadFile],
    directory: Path,
    include_origin: bool = False,
    backend: Optional[OpenCVImageBackend] = None,
    timeout: float = MRZ_STAGE_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Read and parse the MRZ of a document image.

    Args:
        value: String ``image`` field (data URI or URL), if any
        upload: Multipart file for the ``image`` field, if any
        directory: Identity upload directory
        include_origin: Attach raw parser fields to the result
        backend: Image decoding capability
        timeout: Bound for each blocking stage

    Returns:
        {"mrz": recognized text, "passport": IdentificationResult}

    Raises:
        AppError subclass of the stage that failed
    """
    with TempImageGuard() as guard:
        uploaded = None
        if upload is not None:
            uploaded = await save_upload(upload, directory, UPLOAD_FIELD_NAME, guard)

        acquired = await acquire_image(value, uploaded, directory, guard, backend)
        region = await _locate(acquired.image, timeout)
        text = await _recognize(region, timeout)

        lines = split_mrz_lines(text)
        parsed = parse_mrz(extract_mrz_lines(lines) or lines)
        logger.info(f"MRZ parsed successfully: format={parsed.format} valid={parsed.valid}")

        passport = assemble_identification(parsed, guard, directory, include_origin)

    return {"mrz": text, "passport": passport}
