"""MRZ reading endpoints."""
import logging
from pathlib import Path
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from api.dependencies import get_upload_dir
from api.routes.metrics import MRZ_OUTCOMES
from models.schemas import ErrorResponse, MrzResponse
from services.model_context import ModelContext, get_model_context
from services.mrz_pipeline import read_mrz
from utils.config import IS_PRODUCTION, MAX_UPLOAD_SIZE_BYTES
from utils.exceptions import AppError, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["MRZ"])

# Large enough for a base64-encoded image at the upload size limit
MAX_FORM_FIELD_SIZE = MAX_UPLOAD_SIZE_BYTES * 2


def _flag(value) -> Optional[str]:
    return None if value is None else str(value).strip().lower()


async def read_mrz_payload(request: Request) -> Tuple[Optional[str], Optional[UploadFile], Optional[str]]:
    """
    Pull (image string, image upload, include-origin flag) out of a JSON or
    multipart/urlencoded request body.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as e:
            raise ServiceError("Invalid JSON body", code="INVALID_REQUEST", error=str(e))
        if not isinstance(body, dict):
            raise ServiceError("JSON body must be an object", code="INVALID_REQUEST")
        image = body.get("image")
        return (None if image is None else str(image)), None, _flag(body.get("include-origin"))

    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form(max_part_size=MAX_FORM_FIELD_SIZE)
        image = form.get("image")
        flag = _flag(form.get("include-origin"))
        if isinstance(image, UploadFile):
            return None, image, flag
        return image, None, flag

    return None, None, None


@router.post(
    "/mrz",
    response_model=MrzResponse,
    response_model_exclude_unset=True,
    responses={400: {"model": ErrorResponse}},
)
async def read_mrz_endpoint(
    request: Request,
    upload_dir: Path = Depends(get_upload_dir),
    context: ModelContext = Depends(get_model_context),
):
    """
    Read the MRZ of an identity document.

    The image is sent as a multipart ``image`` file, or as an ``image``
    string (data URI or http(s) URL) in a JSON or form body. Set
    ``include-origin`` to ``true`` to get the raw parser fields in
    production.
    """
    value, upload, include_origin_flag = await read_mrz_payload(request)
    include_origin = not IS_PRODUCTION or include_origin_flag == "true"

    try:
        data = await read_mrz(
            value,
            upload,
            upload_dir,
            include_origin=include_origin,
            backend=context.backend,
        )
    except AppError as e:
        MRZ_OUTCOMES.labels(result=e.code).inc()
        raise

    MRZ_OUTCOMES.labels(result="success").inc()
    return {"status": "success", "data": data}
