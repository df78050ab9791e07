"""
Generation API Endpoints

- POST /api/v1/capture: Snapshot from the open camera
- POST /api/v1/enhance: Enhance the snapshot with a text instruction
- POST /api/v1/generate-3d: Generate, install and display a 3D model
- GET /api/v1/images/{captured|enhanced}: Preview the intermediate images
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from snap3d.api.assets import asset_info
from snap3d.api.dependencies import get_pipeline, image_info, raise_for_result, stage_response
from snap3d.core.logging_config import get_logger
from snap3d.models.schemas import (
    EnhanceRequest,
    ErrorResponse,
    GenerationResponse,
    SceneInfo,
    StageResponse,
)
from snap3d.services.pipeline import GenerationPipeline

logger = get_logger("api.generation")
router = APIRouter(tags=["Generation"])


@router.post(
    "/capture",
    response_model=StageResponse,
    responses={409: {"model": ErrorResponse, "description": "Camera not open or capture in progress"}},
)
async def capture(pipeline: GenerationPipeline = Depends(get_pipeline)) -> StageResponse:
    result = raise_for_result(await pipeline.capture())
    return stage_response(result, pipeline.status.message, image_info(result.handle, "captured"))


@router.post(
    "/enhance",
    response_model=StageResponse,
    responses={
        422: {"model": ErrorResponse, "description": "No snapshot or empty instruction"},
        502: {"model": ErrorResponse, "description": "Enhancement service error"},
    },
)
async def enhance(
    body: EnhanceRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> StageResponse:
    result = raise_for_result(await pipeline.enhance(body.instruction))
    return stage_response(result, pipeline.status.message, image_info(result.handle, "enhanced"))


@router.post(
    "/generate-3d",
    response_model=GenerationResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Generation in progress or result superseded"},
        422: {"model": ErrorResponse, "description": "No enhanced image"},
        502: {"model": ErrorResponse, "description": "3D generation service error"},
        504: {"model": ErrorResponse, "description": "3D generation timed out"},
    },
    summary="Generate 3D model from the enhanced image",
    description="""
    Uploads the enhanced image to the image-to-3D service, installs the
    returned GLB as the current asset and loads it into the viewer.

    A viewer failure does not fail the request: the asset stays installed
    and downloadable, and the `render` field carries the viewer error.
    """,
)
async def generate_3d(pipeline: GenerationPipeline = Depends(get_pipeline)) -> GenerationResponse:
    result = raise_for_result(await pipeline.generate_3d())

    rendered = result.followup
    scene = None
    if rendered is not None and rendered.scene is not None:
        normalization = rendered.scene.normalization
        scene = SceneInfo(
            mesh_count=rendered.scene.mesh_count,
            scale=normalization.scale,
            camera_distance=normalization.camera_distance,
            bounds=normalization.bounds.tolist(),
        )

    return GenerationResponse(
        stage=result.stage.value,
        status=result.status.value,
        message=pipeline.status.message,
        asset=asset_info(pipeline, result.reference),
        render=stage_response(rendered, pipeline.status.message) if rendered is not None else None,
        scene=scene,
    )


@router.get("/images/{name}")
async def get_image(name: str, pipeline: GenerationPipeline = Depends(get_pipeline)) -> Response:
    """Preview of the captured or enhanced image."""
    handles = {
        "captured": pipeline.context.captured,
        "enhanced": pipeline.context.enhanced,
    }
    if name not in handles:
        raise HTTPException(status_code=404, detail=f"Unknown image '{name}'")

    handle = handles[name]
    if handle is None:
        raise HTTPException(status_code=404, detail=f"No {name} image available")

    return Response(content=handle.data, media_type=handle.content_type, headers={"Cache-Control": "no-store"})
