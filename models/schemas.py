"""
Pydantic models for API request/response schemas.
"""
from typing import Optional, Literal, Dict, Any
from pydantic import BaseModel, Field


class ImageInfo(BaseModel):
    """What happened to the request's document image."""
    originalFilename: str = Field(..., description="Name the image was stored under during the request")
    newFilename: Optional[str] = Field(None, description="Retained filename (None if not retained)")
    imagePath: Optional[str] = Field(None, description="Path of the retained image (None if deleted)")
    renamed: bool = Field(False, description="Whether the image was retained under a new name")
    renameError: Optional[str] = Field(None, description="Why the rename failed")
    reason: Optional[str] = Field(None, description="Why the image was not retained")


class IdentificationResult(BaseModel):
    """Parsed MRZ record plus image retention outcome."""
    format: str = Field(..., description="MRZ format (TD1, TD2, TD3, MRVA, MRVB)")
    valid: bool = Field(..., description="All MRZ check digits verified")
    documentNumber: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    sex: Optional[str] = Field(None, description="Male, Female or Nonspecified")
    nationality: Optional[str] = None
    issuingState: Optional[str] = None
    birthDate: Optional[str] = Field(None, description="YYYY-MM-DD")
    expirationDate: Optional[str] = Field(None, description="YYYY-MM-DD")
    imageInfo: ImageInfo
    origin: Optional[Dict[str, Any]] = Field(
        None,
        description="Raw parser fields (non-production or include-origin=true)"
    )


class MrzData(BaseModel):
    mrz: str = Field(..., description="Recognized MRZ text, one line per row")
    passport: IdentificationResult


class MrzResponse(BaseModel):
    """Response model for the /ai/mrz endpoint."""
    status: Literal["success"] = "success"
    data: MrzData


class FaceComparisonResponse(BaseModel):
    """
    Response model for the /ai/compare-faces endpoint.

    A no-face outcome only carries ``success`` and ``message``.
    """
    success: bool
    similarity: Optional[str] = Field(None, description="1 - distance, 4 decimals")
    distance: Optional[str] = Field(None, description="Euclidean descriptor distance, 4 decimals")
    isMatch: Optional[bool] = Field(None, description="distance < 0.6")
    matchLevel: Optional[str] = Field(
        None,
        description="Excellent Match, Good Match, Moderate Match or Poor Match"
    )
    tensorflowBackend: Optional[str] = Field(None, description="Inference backend name")
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "similarity": "0.6123",
                "distance": "0.3877",
                "isMatch": True,
                "matchLevel": "Excellent Match",
                "tensorflowBackend": "dlib"
            }
        }


class ErrorResponse(BaseModel):
    """Failure envelope shared by every endpoint."""
    status: Literal["failed"] = "failed"
    success: Literal[False] = False
    code: str
    message: str
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    stack: Optional[str] = None


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    environment: str
    ocr_ready: bool
    face_recognition_ready: bool
