from fastapi import APIRouter, Depends

from snap3d.api.dependencies import get_pipeline
from snap3d.models.schemas import StatusResponse
from snap3d.services.pipeline import GenerationPipeline

router = APIRouter(tags=["Status"])


@router.get("/status", response_model=StatusResponse)
async def get_status(pipeline: GenerationPipeline = Depends(get_pipeline)) -> StatusResponse:
    """Current status line plus which inputs and outputs are available."""
    return StatusResponse(**pipeline.snapshot())
