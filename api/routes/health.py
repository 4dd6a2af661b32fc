"""Health check endpoints."""
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from models.schemas import HealthResponse
from services.model_context import ModelContext, get_model_context
from services.mrz_recognizer import tesseract_available
from utils.config import APP_ENV

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(context: ModelContext = Depends(get_model_context)):
    """
    Check if the service is healthy and the OCR engine and face models are usable.
    """
    ocr_ready = await run_in_threadpool(tesseract_available)

    return HealthResponse(
        status="ok",
        environment=APP_ENV,
        ocr_ready=ocr_ready,
        face_recognition_ready=context.ready
    )
