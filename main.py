"""
Identity Verification API

Reads the machine readable zone (MRZ) of identity documents and compares
a personal photo with a stored passport photo.

Usage:
    uvicorn main:app --reload

Then access the API documentation at http://localhost:8000/docs
"""
import logging
import traceback
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.exceptions import AppError, ModelLoadError
from utils.logging_config import configure_logging
from utils.config import APP_ENV, IDENTITY_UPLOAD_DIR, IS_PRODUCTION, LOG_LEVEL, LOG_JSON_FORMAT
from utils.image_manager import ensure_upload_dir
from middleware.request_id import RequestIDMiddleware, get_request_id
from services.model_context import ModelContext
from api.routes import router as identity_router
from api.routes.health import router as health_router
from api.routes.metrics import MetricsMiddleware, router as metrics_router

# Configure structured JSON logging
configure_logging(level=LOG_LEVEL, json_format=LOG_JSON_FORMAT)
logger = logging.getLogger(__name__)

API_NAME = "Identity Verification API"
API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Creates the upload directory and preloads the face models for faster
    first requests. A failed preload is retried on the first face request.
    """
    logger.info(f"Starting {API_NAME} ({APP_ENV})...")

    ensure_upload_dir(IDENTITY_UPLOAD_DIR)

    if getattr(app.state, "models", None) is None:
        app.state.models = ModelContext()

    try:
        await app.state.models.ensure_initialized()
    except ModelLoadError as e:
        logger.warning(f"Failed to preload face recognition models: {e.error or e.message}")

    logger.info(f"{API_NAME} ready!")

    yield  # Application runs here

    logger.info(f"Shutting down {API_NAME}...")


# Create FastAPI application
app = FastAPI(
    title=API_NAME,
    description="""
    Identity document verification for the gig-work platform.

    ## Features

    * **MRZ reading**: Locate, OCR and parse the MRZ of passports, ID cards and visas
      (TD1, TD2, TD3, MRVA, MRVB) with check digit verification
    * **Image retention**: Identified document images are kept under an auditable name
    * **Face comparison**: Compare a personal photo with a stored passport photo

    ## Endpoints

    1. `POST /ai/mrz` with a multipart `image` file, or an `image` data URI / URL
    2. `POST /ai/compare-faces` with `personalPhoto` and `passportPhotoPath`
    """,
    version=API_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add custom middleware (order matters: last added = outermost)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Global handler for all AppError exceptions.

    Converts custom exceptions to consistent JSON responses.
    """
    logger.warning(
        f"[{exc.code}] {exc.message} | Error: {exc.error} | Details: {exc.details}",
        extra={"request_id": get_request_id(request), "path": request.url.path}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Routing and body-parsing errors raised by Starlette (404, 405, bad multipart)."""
    error = AppError(str(exc.detail), code="HTTP_ERROR", status_code=exc.status_code)
    logger.warning(
        f"[{error.code}] {exc.status_code} {error.message}",
        extra={"request_id": get_request_id(request), "path": request.url.path}
    )
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Request validation failures in the same envelope as every other error."""
    error = AppError(
        "Invalid request",
        code="VALIDATION_ERROR",
        status_code=422,
        details={"errors": jsonable_errors(exc)}
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Last-resort handler: HTTP 500, with the stack trace outside production."""
    logger.exception(
        f"Unhandled error on {request.url.path}: {exc}",
        extra={"request_id": get_request_id(request), "path": request.url.path}
    )
    error = AppError("Internal server error", error=str(exc))
    content = error.to_dict()
    if not IS_PRODUCTION:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=error.status_code, content=content)


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# Include API routes
app.include_router(identity_router, prefix="/ai")
app.include_router(health_router)
app.include_router(metrics_router)  # /metrics at root level


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": API_NAME,
        "version": API_VERSION,
        "environment": APP_ENV,
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=False
    )
