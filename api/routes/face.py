"""Face comparison endpoints."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from api.dependencies import get_upload_dir
from api.routes.metrics import FACE_OUTCOMES
from models.schemas import ErrorResponse, FaceComparisonResponse
from services.face_matcher import compare_faces
from services.model_context import ModelContext, get_model_context
from services.temp_files import TempImageGuard
from services.uploads import save_upload
from utils.exceptions import AppError, ImageAcquisitionError, ResourceNotFoundError, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Face"])

PERSONAL_PHOTO_FIELD = "personalPhoto"


def resolve_passport_photo(upload_dir: Path, passport_photo_path: str) -> Path:
    """
    Resolve a client-supplied passport photo path inside the upload directory.

    Only the basename is used, so the path can never leave ``upload_dir``.

    Raises:
        ResourceNotFoundError: If no such file exists
    """
    filename = Path(passport_photo_path.replace("\\", "/")).name
    resolved = Path(upload_dir) / filename
    if not filename or not resolved.is_file():
        raise ResourceNotFoundError("Passport photo", passport_photo_path)
    return resolved


@router.post(
    "/compare-faces",
    response_model=FaceComparisonResponse,
    response_model_exclude_unset=True,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def compare_faces_endpoint(
    personalPhoto: Optional[UploadFile] = File(None, description="Personal photo (selfie)"),
    passportPhotoPath: Optional[str] = Form(None, description="Filename/path of a stored passport photo"),
    upload_dir: Path = Depends(get_upload_dir),
    context: ModelContext = Depends(get_model_context),
):
    """
    Compare the face in a personal photo with a stored passport photo.

    The uploaded personal photo is deleted once the comparison is done,
    whatever the outcome.
    """
    if personalPhoto is None or not passportPhotoPath:
        raise ServiceError(
            "Personal photo file and passport photo path are required",
            code="MISSING_FIELDS",
            details={
                "personalPhoto": "Uploaded" if personalPhoto is not None else "Missing",
                "passportPhotoPath": "Provided" if passportPhotoPath else "Missing",
            },
        )

    with TempImageGuard() as guard:
        personal = await save_upload(personalPhoto, upload_dir, PERSONAL_PHOTO_FIELD, guard)
        passport_path = resolve_passport_photo(upload_dir, passportPhotoPath)

        try:
            result = await compare_faces(personal.path, passport_path, context)
        except asyncio.TimeoutError:
            FACE_OUTCOMES.labels(result="TIMEOUT").inc()
            raise AppError("Face comparison timed out", code="FACE_TIMEOUT", status_code=504)
        except ValueError as e:
            FACE_OUTCOMES.labels(result="IMAGE_ACQUISITION_ERROR").inc()
            raise ImageAcquisitionError("Failed to load image for face comparison", error=str(e))
        except AppError as e:
            FACE_OUTCOMES.labels(result=e.code).inc()
            raise

    if not result["success"]:
        FACE_OUTCOMES.labels(result="no_face").inc()
    else:
        FACE_OUTCOMES.labels(result="match" if result["isMatch"] else "no_match").inc()
    return result
