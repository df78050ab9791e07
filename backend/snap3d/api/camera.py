"""
Camera API Endpoints

- POST /api/v1/camera/open: Acquire the capture device
- POST /api/v1/camera/close: Release it
- POST /api/v1/camera/toggle: Open if closed, close if open
- GET /api/v1/camera: Current device session state

Opening requires a secure context (HTTPS or a loopback client) unless
CAMERA_ALLOW_INSECURE is set.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from snap3d.api.dependencies import get_app_settings, get_pipeline, is_secure_context, raise_for_result
from snap3d.core.config import Settings
from snap3d.core.logging_config import get_logger
from snap3d.models.schemas import CameraOpenRequest, CameraState, ErrorResponse
from snap3d.services.camera import DeviceConstraints
from snap3d.services.pipeline import GenerationPipeline

logger = get_logger("api.camera")
router = APIRouter(tags=["Camera"])


def _constraints(body: Optional[CameraOpenRequest]) -> DeviceConstraints:
    body = body or CameraOpenRequest()
    return DeviceConstraints(width=body.width, height=body.height, facing_mode=body.facing_mode.value)


def _camera_state(pipeline: GenerationPipeline) -> CameraState:
    state = pipeline.camera_state
    width, height = state.frame_size or (None, None)
    return CameraState(
        device_active=state.device_active,
        device_index=state.device_index,
        frame_width=width,
        frame_height=height,
        has_last_frame=state.last_frame is not None,
    )


@router.get("/camera", response_model=CameraState)
async def get_camera(pipeline: GenerationPipeline = Depends(get_pipeline)) -> CameraState:
    return _camera_state(pipeline)


@router.post(
    "/camera/open",
    response_model=CameraState,
    responses={
        403: {"model": ErrorResponse, "description": "Permission denied or insecure context"},
        404: {"model": ErrorResponse, "description": "No camera found"},
    },
)
async def open_camera(
    request: Request,
    body: Optional[CameraOpenRequest] = None,
    pipeline: GenerationPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> CameraState:
    """Request the camera with ideal 1280x720, rear-facing, no audio."""
    result = await pipeline.open_camera(_constraints(body), secure_context=is_secure_context(request, settings))
    raise_for_result(result)
    return _camera_state(pipeline)


@router.post("/camera/close", response_model=CameraState)
async def close_camera(pipeline: GenerationPipeline = Depends(get_pipeline)) -> CameraState:
    await pipeline.close_camera()
    return _camera_state(pipeline)


@router.post("/camera/toggle", response_model=CameraState)
async def toggle_camera(
    request: Request,
    body: Optional[CameraOpenRequest] = None,
    pipeline: GenerationPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> CameraState:
    result = await pipeline.toggle_camera(_constraints(body), secure_context=is_secure_context(request, settings))
    raise_for_result(result)
    return _camera_state(pipeline)
