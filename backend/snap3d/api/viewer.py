"""
Viewer API Endpoints

- GET /api/v1/viewer: Viewer and overlay state
- GET /api/v1/viewer/frame: Latest rendered frame (JPEG)
- GET /api/v1/viewer/stream: Live frames as an MJPEG stream
- POST /api/v1/viewer/resize: Report a new container width
- POST /api/v1/viewer/navigate: Orbit drag and wheel zoom input
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from snap3d.api.dependencies import get_pipeline
from snap3d.core.logging_config import get_logger
from snap3d.models.schemas import NavigateRequest, OverlayInfo, ResizeRequest, ViewerState
from snap3d.services.pipeline import GenerationPipeline

logger = get_logger("api.viewer")
router = APIRouter(tags=["Viewer"])

STREAM_BOUNDARY = "frame"
STREAM_IDLE_TIMEOUT = 5.0


def _viewer_state(pipeline: GenerationPipeline) -> ViewerState:
    container = pipeline.context.container
    return ViewerState(
        **pipeline.context.viewer.state(),
        overlays=[OverlayInfo(id=o.id, text=o.text, style=o.style) for o in container.overlays],
    )


@router.get("/viewer", response_model=ViewerState)
async def viewer_state(pipeline: GenerationPipeline = Depends(get_pipeline)) -> ViewerState:
    return _viewer_state(pipeline)


@router.get("/viewer/frame")
async def viewer_frame(pipeline: GenerationPipeline = Depends(get_pipeline)) -> Response:
    frame = pipeline.context.container.frame
    if frame is None:
        raise HTTPException(status_code=404, detail="No frame rendered yet")
    return Response(content=frame, media_type="image/jpeg", headers={"Cache-Control": "no-store"})


@router.get("/viewer/stream")
async def viewer_stream(request: Request, pipeline: GenerationPipeline = Depends(get_pipeline)) -> StreamingResponse:
    container = pipeline.context.container

    async def frames():
        last_id = 0
        while True:
            frame = await container.wait_for_frame(last_id, timeout=STREAM_IDLE_TIMEOUT)
            if await request.is_disconnected():
                break
            if frame is None:
                continue
            last_id = container.frame_id
            yield (
                f"--{STREAM_BOUNDARY}\r\n"
                f"Content-Type: image/jpeg\r\n"
                f"Content-Length: {len(frame)}\r\n\r\n"
            ).encode("ascii") + frame + b"\r\n"

    return StreamingResponse(frames(), media_type=f"multipart/x-mixed-replace; boundary={STREAM_BOUNDARY}")


@router.post("/viewer/resize", response_model=ViewerState)
async def resize_viewer(body: ResizeRequest, pipeline: GenerationPipeline = Depends(get_pipeline)) -> ViewerState:
    width, height = pipeline.context.viewer.resize(body.client_width)
    logger.debug(f"Viewer resized to {width}x{height}")
    return _viewer_state(pipeline)


@router.post("/viewer/navigate", response_model=ViewerState)
async def navigate_viewer(body: NavigateRequest, pipeline: GenerationPipeline = Depends(get_pipeline)) -> ViewerState:
    """Drag deltas are in surface pixels; negative zoom moves closer."""
    viewer = pipeline.context.viewer
    if body.dx or body.dy:
        viewer.rotate(body.dx, body.dy)
    if body.zoom:
        viewer.zoom(body.zoom)
    return _viewer_state(pipeline)
