from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
from datetime import datetime, timezone
from dotenv import load_dotenv
from snap3d.core.config import get_settings
from snap3d.core.logging_config import setup_logging, get_logger
from snap3d.core.middleware import RequestLoggingMiddleware
from snap3d.core.error_handler import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler
)
from snap3d.core.exceptions import AppException
from snap3d.services.pipeline import create_generation_pipeline
from snap3d.services.status import READY_MESSAGE
from contextlib import asynccontextmanager

# Load environment variables from .env file
load_dotenv()

settings = get_settings()

# Initialize logging
setup_logging(log_level=settings.log_level, log_file=settings.log_file)
logger = get_logger("main")

# Log environment configuration on startup
logger.info(f"Environment loaded - GEMINI_API_KEY: {'set' if settings.gemini_api_key else 'not set'}, "
            f"THREED_API_URL: {settings.threed_api_url or 'not set'}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown hooks."""
    # Startup
    logger.info("=" * 60)
    logger.info("Starting snap3d service...")
    logger.info("=" * 60)

    app.state.settings = getattr(app.state, "settings", None) or settings

    # Tests install their own pipeline before startup
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = create_generation_pipeline(app.state.settings)

    pipeline = app.state.pipeline
    pipeline.status.set(READY_MESSAGE)

    logger.info("snap3d service is ready!")

    yield

    # Shutdown
    logger.info("Shutting down snap3d service...")
    await pipeline.teardown()
    app.state.pipeline = None
    logger.info("All resources released")

app = FastAPI(
    title="snap3d API",
    description="Camera capture to enhanced image to downloadable, viewable 3D model",
    version="1.0.0",
    lifespan=lifespan
)

# CORS Configuration
origins = settings.allowed_origins

allow_all_origins = "*" in origins
if allow_all_origins:
    logger.warning(
        "CORS configured to allow ALL origins (*). "
        "Set ALLOWED_ORIGINS environment variable to specific domains in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else origins,
    allow_credentials=not allow_all_origins,  # Can't use credentials with wildcard
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Add custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

from snap3d.api.camera import router as camera_router
from snap3d.api.generation import router as generation_router
from snap3d.api.assets import router as assets_router
from snap3d.api.viewer import router as viewer_router
from snap3d.api.status import router as status_router

app.include_router(camera_router, prefix="/api/v1")
app.include_router(generation_router, prefix="/api/v1")
app.include_router(assets_router, prefix="/api/v1")
app.include_router(viewer_router, prefix="/api/v1")
app.include_router(status_router, prefix="/api/v1")

@app.get("/")
async def root():
    return {
        "message": "snap3d API Online",
        "status": "active",
        "version": "1.0.0",
        "type": "generation-service"
    }

@app.get("/health")
async def health_check():
    """
    Service health: remote service configuration, camera and viewer state
    """
    app_settings = getattr(app.state, "settings", None) or settings
    pipeline = getattr(app.state, "pipeline", None)

    health_status = {
        "status": "healthy",
        "service": "snap3d",
        "checks": {},
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    # 1. Enhancement service (Gemini)
    gemini_configured = bool(app_settings.gemini_api_key)
    health_status["checks"]["enhancement_service"] = {
        "configured": gemini_configured,
        "model": app_settings.gemini_image_model,
        "masked_key": f"{app_settings.gemini_api_key[:8]}..." if gemini_configured else None
    }
    if not gemini_configured:
        logger.warning("GEMINI_API_KEY not configured - enhancement will fail")
        health_status["status"] = "degraded"

    # 2. 3D generation service
    threed_configured = bool(app_settings.threed_api_url)
    health_status["checks"]["generation_service"] = {
        "configured": threed_configured,
        "endpoint": app_settings.threed_api_url
    }
    if not threed_configured:
        logger.warning("THREED_API_URL not configured - 3D generation will fail")
        health_status["status"] = "degraded"

    # 3. Pipeline state
    if pipeline is not None:
        health_status["checks"]["camera"] = {"open": pipeline.context.camera.is_open}
        health_status["checks"]["viewer"] = {
            "running": pipeline.context.viewer.is_running,
            "live_references": pipeline.context.registry.live_count
        }
    else:
        health_status["status"] = "unhealthy"

    logger.info(f"Health check performed: {health_status['status']}")
    return health_status

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
