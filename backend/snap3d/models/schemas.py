from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from enum import Enum

# Configure strict validation globally
class StrictBaseModel(BaseModel):
    """Base model with strict validation - rejects extra fields"""
    model_config = ConfigDict(extra='forbid', str_strip_whitespace=True)

class FacingMode(str, Enum):
    ENVIRONMENT = "environment"
    USER = "user"

# Camera schemas
class CameraOpenRequest(StrictBaseModel):
    width: int = Field(1280, ge=160, le=7680)
    height: int = Field(720, ge=120, le=4320)
    facing_mode: FacingMode = FacingMode.ENVIRONMENT

class CameraState(StrictBaseModel):
    device_active: bool
    device_index: Optional[int] = None
    frame_width: Optional[int] = Field(None, ge=0)
    frame_height: Optional[int] = Field(None, ge=0)
    has_last_frame: bool = False

# Stage schemas
class EnhanceRequest(StrictBaseModel):
    # Blank instructions are reported by the pipeline as missing input
    instruction: str = Field("", max_length=4000)

class ImageInfo(StrictBaseModel):
    content_type: str
    size_bytes: int = Field(..., ge=0)
    url: str = Field(..., min_length=1)

class StageResponse(StrictBaseModel):
    stage: str
    status: str = Field(..., pattern="^(pending|succeeded|failed)$")
    message: str
    image: Optional[ImageInfo] = None
    error: Optional[Dict[str, Any]] = None

class AssetInfo(StrictBaseModel):
    public_url: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    content_type: str
    size_bytes: int = Field(..., ge=0)
    download_url: str
    created_at: Optional[str] = None

class SceneInfo(StrictBaseModel):
    mesh_count: int = Field(..., ge=0)
    scale: float = Field(..., gt=0)
    camera_distance: float = Field(..., gt=0)
    bounds: List[List[float]]

class GenerationResponse(StrictBaseModel):
    stage: str
    status: str = Field(..., pattern="^(pending|succeeded|failed)$")
    message: str
    asset: Optional[AssetInfo] = None
    render: Optional[StageResponse] = None
    scene: Optional[SceneInfo] = None

# Status schemas
class StatusResponse(StrictBaseModel):
    message: str
    is_error: bool
    camera_open: bool
    has_captured: bool
    has_enhanced: bool
    asset_filename: Optional[str] = None
    download_enabled: bool
    cycle: int = Field(..., ge=0)
    busy: List[str] = Field(default_factory=list)

# Viewer schemas
class OverlayInfo(StrictBaseModel):
    id: int
    text: str
    style: str

class ViewerState(StrictBaseModel):
    loaded: bool
    running: bool
    asset_url: Optional[str] = None
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    mesh_count: int = Field(0, ge=0)
    scale: Optional[float] = None
    camera_distance: Optional[float] = None
    frame_id: int = Field(0, ge=0)
    overlays: List[OverlayInfo] = Field(default_factory=list)

class NavigateRequest(StrictBaseModel):
    dx: float = 0.0
    dy: float = 0.0
    zoom: float = 0.0

class ResizeRequest(StrictBaseModel):
    client_width: int = Field(..., ge=0, le=16384)

# Health monitoring schemas
class ComponentHealth(StrictBaseModel):
    status: str = Field(..., pattern="^(healthy|degraded|unhealthy)$")
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

class HealthStatus(StrictBaseModel):
    status: str = Field(..., pattern="^(healthy|degraded|unhealthy)$")
    checks: Dict[str, ComponentHealth]
    timestamp: str

# Error response schema
class ErrorDetail(StrictBaseModel):
    type: str = Field(..., pattern="^(user_error|system_error)$")
    code: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    details: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None

class ErrorResponse(StrictBaseModel):
    error: ErrorDetail
