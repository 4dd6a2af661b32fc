"""
Custom Application Exceptions.

Provides a hierarchy of exceptions for consistent error handling. Each stage
of the MRZ pipeline raises its own subclass so the caller gets a
stage-specific message.

Usage:
    from utils.exceptions import MrzCropError, ResourceNotFoundError

    # In services
    raise MrzCropError(error=str(exc))

    # For missing files referenced by the client
    raise ResourceNotFoundError("Passport photo", filename)
"""
from typing import Optional, Dict, Any


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "MRZ_CROP_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
        error: Underlying cause (usually the library's own message)
    """
    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.error = error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        body: Dict[str, Any] = {
            "status": "failed",
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.error:
            body["error"] = self.error
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# SERVICE LAYER EXCEPTIONS (400-level errors)
# =============================================================================

class ServiceError(AppError):
    """
    General service-layer error (bad input, processing failure).

    Use for: Generic service failures not covered by specific exceptions below.
    """
    def __init__(
        self,
        message: str,
        code: str = "SERVICE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None
    ):
        super().__init__(message, code, status_code=400, details=details, error=error)


class ImageAcquisitionError(ServiceError):
    """
    Document image could not be obtained or decoded.

    Use for: Bad base64 payloads, unreachable URLs, missing uploads.
    """
    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code="IMAGE_ACQUISITION_ERROR", details=details, error=error)


class UploadValidationError(ServiceError):
    """Uploaded file was rejected (size, type)."""
    def __init__(self, error: str, message: str):
        super().__init__(message, code="UPLOAD_VALIDATION_ERROR", error=error)


class MrzCropError(ServiceError):
    """No MRZ-shaped region could be located in the document image."""
    def __init__(self, error: Optional[str] = None):
        super().__init__(
            "Cannot crop image for MRZ detection",
            code="MRZ_CROP_ERROR",
            error=error
        )


class MrzRecognitionError(ServiceError):
    """
    OCR failed on the cropped MRZ region.

    Use for: Engine failures, timeouts, and empty recognition output
    (each with its own message).
    """
    def __init__(self, message: str = "Cannot read MRZ from image", error: Optional[str] = None):
        super().__init__(message, code="MRZ_RECOGNITION_ERROR", error=error)


class MrzParseError(ServiceError):
    """
    Recognized text does not follow any MRZ grammar.

    Checksum mismatches are NOT parse errors; they are reported as
    ``valid: false`` on an otherwise successful parse.
    """
    def __init__(self, error: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "Cannot parse MRZ data to object",
            code="MRZ_PARSE_ERROR",
            details=details,
            error=error
        )


class ResourceNotFoundError(ServiceError):
    """
    A file referenced by the client does not exist.

    Use for: Passport photo path that resolves to nothing.
    """
    def __init__(
        self,
        resource: str,
        identifier: str,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        _details["resource"] = resource
        _details["identifier"] = identifier
        super().__init__(
            f"{resource} not found at the specified path",
            code="NOT_FOUND",
            details=_details
        )


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS (500-level errors)
# =============================================================================

class ModelLoadError(AppError):
    """
    ML model failed to load.

    Use for: Face detection / descriptor models.
    """
    def __init__(
        self,
        model_name: str,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        _details["model"] = model_name
        super().__init__(
            f"Failed to load model: {model_name}",
            "MODEL_LOAD_ERROR",
            status_code=503,
            details=_details,
            error=reason
        )
