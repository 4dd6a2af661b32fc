"""
API Routes Module.

This module combines the identity verification routers into a single router
mounted under ``/ai``. Health and metrics routes are mounted at the root.
"""
from fastapi import APIRouter

from .mrz import router as mrz_router
from .face import router as face_router

# Combined router that includes all sub-routers
router = APIRouter()

router.include_router(mrz_router)
router.include_router(face_router)

__all__ = ["router"]
