"""
Asset API Endpoints

- GET /api/v1/assets/current: Metadata of the installed asset
- GET /api/v1/assets/current/download: Installed asset as an attachment
- GET /api/v1/assets/{token}: Bytes behind a live public reference
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from snap3d.api.dependencies import API_PREFIX, get_pipeline
from snap3d.core.exceptions import AssetNotInstalledException
from snap3d.core.logging_config import get_logger
from snap3d.models.schemas import AssetInfo, ErrorResponse
from snap3d.services.asset_slot import AssetReference
from snap3d.services.pipeline import GenerationPipeline

logger = get_logger("api.assets")
router = APIRouter(tags=["Assets"])


def asset_info(pipeline: GenerationPipeline, reference: Optional[AssetReference]) -> Optional[AssetInfo]:
    if reference is None:
        return None
    metadata = pipeline.context.registry.get_metadata(reference.public_url) or {}
    return AssetInfo(
        public_url=reference.public_url,
        token=reference.token,
        filename=reference.suggested_filename,
        content_type=reference.handle.content_type,
        size_bytes=reference.handle.size,
        download_url=f"{API_PREFIX}/assets/current/download",
        created_at=metadata.get("created_at"),
    )


def content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


@router.get(
    "/assets/current",
    response_model=AssetInfo,
    responses={404: {"model": ErrorResponse, "description": "No asset installed"}},
)
async def current_asset(pipeline: GenerationPipeline = Depends(get_pipeline)) -> AssetInfo:
    reference = pipeline.context.slot.current()
    if reference is None:
        raise AssetNotInstalledException()
    return asset_info(pipeline, reference)


@router.get(
    "/assets/current/download",
    responses={404: {"model": ErrorResponse, "description": "No asset installed"}},
)
async def download_asset(pipeline: GenerationPipeline = Depends(get_pipeline)) -> Response:
    """Download the installed GLB under its suggested filename."""
    reference = pipeline.context.slot.current()
    if reference is None:
        raise AssetNotInstalledException()

    logger.info(f"Serving download of {reference.suggested_filename}")
    return Response(
        content=reference.handle.data,
        media_type=reference.handle.content_type,
        headers={"Content-Disposition": content_disposition(reference.suggested_filename)},
    )


@router.get(
    "/assets/{token}",
    responses={404: {"model": ErrorResponse, "description": "Reference revoked or unknown"}},
)
async def resolve_asset(token: str, pipeline: GenerationPipeline = Depends(get_pipeline)) -> Response:
    registry = pipeline.context.registry
    handle = registry.resolve(registry.url_for(token))
    if handle is None:
        raise AssetNotInstalledException({"token": token})
    return Response(content=handle.data, media_type=handle.content_type)
