"""
Shared request dependencies and response helpers for the API routers.
"""

from typing import Optional

from fastapi import Request

from snap3d.core.config import Settings, get_settings
from snap3d.services.object_urls import BinaryHandle
from snap3d.services.pipeline import GenerationPipeline, StageResult
from snap3d.models.schemas import ImageInfo, StageResponse

API_PREFIX = "/api/v1"

LOOPBACK_HOSTS = {"127.0.0.1", "::1", "localhost"}


def get_pipeline(request: Request) -> GenerationPipeline:
    return request.app.state.pipeline


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def is_secure_context(request: Request, settings: Settings) -> bool:
    """HTTPS (directly or behind a proxy) or a loopback client."""
    if settings.camera_allow_insecure:
        return True
    if request.url.scheme == "https":
        return True
    if request.headers.get("x-forwarded-proto", "").lower() == "https":
        return True
    client_host = request.client.host if request.client else None
    return client_host in LOOPBACK_HOSTS


def image_info(handle: Optional[BinaryHandle], name: str) -> Optional[ImageInfo]:
    if handle is None:
        return None
    return ImageInfo(
        content_type=handle.content_type,
        size_bytes=handle.size,
        url=f"{API_PREFIX}/images/{name}",
    )


def stage_response(
    result: StageResult,
    message: str,
    image: Optional[ImageInfo] = None,
) -> StageResponse:
    error = None
    if result.error is not None:
        error = {
            "code": result.error.error_code.value,
            "message": result.error.message,
            "details": result.error.details,
        }
    return StageResponse(
        stage=result.stage.value,
        status=result.status.value,
        message=message,
        image=image,
        error=error,
    )


def raise_for_result(result: StageResult) -> StageResult:
    """Turn a failed stage into the structured error response."""
    if result.error is not None:
        raise result.error
    return result
