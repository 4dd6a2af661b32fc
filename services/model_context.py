"""
Application-scoped model context.

Holds the face models and the image backend for one application instance.
Initialization is lazy, idempotent and safe under concurrent requests: the
first caller loads the models, everyone else waits for it, and a failed
load leaves the context uninitialized so a later request retries.
"""
import asyncio
import logging
from typing import Optional

from fastapi import Request
from fastapi.concurrency import run_in_threadpool

from services.face_extractor import FaceExtractor
from utils.image_manager import OpenCVImageBackend

logger = logging.getLogger(__name__)


class ModelContext:
    """Models and image capabilities shared by all requests of one app."""

    def __init__(
        self,
        extractor: Optional[FaceExtractor] = None,
        backend: Optional[OpenCVImageBackend] = None,
    ):
        self.extractor = extractor or FaceExtractor()
        self.backend = backend or OpenCVImageBackend()
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._initialized

    @property
    def backend_name(self) -> str:
        return getattr(self.extractor, "name", "unknown")

    async def ensure_initialized(self) -> None:
        """
        Load the face models once.

        Raises:
            ModelLoadError: If loading fails
        """
        if self._initialized:
            return
        async with self._lock:
            if self._initialized:
                return
            logger.info("Loading face detection models...")
            await run_in_threadpool(self.extractor.load)
            self._initialized = True
            logger.info(f"Face models ready (backend: {self.backend_name})")


def get_model_context(request: Request) -> ModelContext:
    """FastAPI dependency returning the application's model context."""
    context = getattr(request.app.state, "models", None)
    if context is None:
        context = ModelContext()
        request.app.state.models = context
    return context
