"""
Generation Pipeline

capture -> enhance -> generate 3D -> render

Each stage checks its prerequisites, reports a status line, and returns a
StageResult; failures are captured in the result rather than raised so the
caller decides how to surface them. A stage that is already running rejects
a second invocation with StageBusy and changes nothing.

Latest wins: a 3D model that comes back after a newer capture or enhance
started is discarded instead of replacing what the operator is looking at.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from render_engine.container import ViewerContainer
from render_engine.loader import default_toolkit_loader
from render_engine.scene import SceneGraph
from render_engine.viewer import SceneViewer
from snap3d.core.config import Settings
from snap3d.core.exceptions import (
    AppException,
    AssetDecodeErrorException,
    AssetHasNoSceneException,
    DeviceNotFoundException,
    InsecureContextException,
    InternalErrorException,
    LibraryUnavailableException,
    MissingInputException,
    NoActiveDeviceException,
    PermissionDeniedException,
    StageBusyException,
    StaleResultException,
)
from snap3d.core.logging_config import get_logger
from snap3d.services.asset_slot import AssetReference, AssetSlot
from snap3d.services.camera import CameraService, CaptureState, DeviceConstraints
from snap3d.services.enhancer import ImageEnhancer
from snap3d.services.model_generator import ModelGenerator
from snap3d.services.object_urls import BinaryHandle, ObjectUrlRegistry
from snap3d.services.progress import ProgressReporter
from snap3d.services.status import StatusBoard

logger = get_logger("services.pipeline")


class StageName(str, Enum):
    CAMERA = "camera"
    CAPTURE = "capture"
    ENHANCE = "enhance"
    GENERATE_3D = "generate_3d"
    RENDER = "render"


class StageStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class StageResult:
    stage: StageName
    status: StageStatus
    handle: Optional[BinaryHandle] = None
    reference: Optional[AssetReference] = None
    scene: Optional[SceneGraph] = None
    error: Optional[AppException] = None
    followup: Optional["StageResult"] = None

    @classmethod
    def pending(cls, stage: StageName) -> "StageResult":
        return cls(stage, StageStatus.PENDING)

    @classmethod
    def succeeded(cls, stage: StageName, **values) -> "StageResult":
        return cls(stage, StageStatus.SUCCEEDED, **values)

    @classmethod
    def failed(cls, stage: StageName, error: AppException) -> "StageResult":
        return cls(stage, StageStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCEEDED


class StageGuard:
    """Per-stage in-flight flags."""

    def __init__(self):
        self._in_flight: Set[StageName] = set()

    def is_busy(self, stage: StageName) -> bool:
        return stage in self._in_flight

    @property
    def busy(self) -> Set[StageName]:
        return set(self._in_flight)

    @contextmanager
    def hold(self, stage: StageName):
        if stage in self._in_flight:
            raise StageBusyException(stage.value)
        self._in_flight.add(stage)
        try:
            yield
        finally:
            self._in_flight.discard(stage)


@dataclass
class PipelineContext:
    """Single-owner state shared by the stages."""
    camera: CameraService
    registry: ObjectUrlRegistry
    slot: AssetSlot
    container: ViewerContainer
    viewer: SceneViewer
    progress: ProgressReporter
    status: StatusBoard
    captured: Optional[BinaryHandle] = None
    enhanced: Optional[BinaryHandle] = None
    cycle: int = 0


def _as_app_error(error: Exception) -> AppException:
    if isinstance(error, AppException):
        return error
    logger.error(f"Unexpected pipeline error: {error}", exc_info=True)
    return InternalErrorException({"reason": f"{type(error).__name__}: {error}"})


class GenerationPipeline:
    def __init__(self, context: PipelineContext, enhancer: ImageEnhancer, generator: ModelGenerator):
        self.context = context
        self.enhancer = enhancer
        self.generator = generator
        self.guard = StageGuard()

    @property
    def status(self) -> StatusBoard:
        return self.context.status

    def _fail(self, stage: StageName, error: AppException, message: Optional[str] = None) -> StageResult:
        self.status.set(message or error.message, is_error=True)
        return StageResult.failed(stage, error)

    # Camera

    async def open_camera(
        self,
        constraints: Optional[DeviceConstraints] = None,
        secure_context: bool = True,
    ) -> StageResult:
        if not secure_context:
            return self._fail(StageName.CAMERA, InsecureContextException())

        self.status.set("Requesting camera permission...")
        try:
            await self.context.camera.open(constraints)
        except PermissionDeniedException as e:
            return self._fail(StageName.CAMERA, e, "Camera permission denied. Allow camera access for this service.")
        except DeviceNotFoundException as e:
            return self._fail(StageName.CAMERA, e, "No camera found on device.")
        except Exception as e:
            error = _as_app_error(e)
            return self._fail(StageName.CAMERA, error, f"Error opening camera: {error.message}")

        self.status.set("Camera opened.")
        return StageResult.succeeded(StageName.CAMERA)

    async def close_camera(self) -> StageResult:
        await self.context.camera.close()
        self.status.set("Camera closed.")
        return StageResult.succeeded(StageName.CAMERA)

    async def toggle_camera(
        self,
        constraints: Optional[DeviceConstraints] = None,
        secure_context: bool = True,
    ) -> StageResult:
        if self.context.camera.is_open:
            return await self.close_camera()
        return await self.open_camera(constraints, secure_context)

    @property
    def camera_state(self) -> CaptureState:
        return self.context.camera.state

    # Stages

    async def capture(self) -> StageResult:
        """Grab a PNG snapshot from the open camera and start a new cycle."""
        try:
            with self.guard.hold(StageName.CAPTURE):
                if not self.context.camera.is_open:
                    return self._fail(StageName.CAPTURE, NoActiveDeviceException())

                try:
                    handle = await self.context.camera.capture()
                except Exception as e:
                    return self._fail(StageName.CAPTURE, _as_app_error(e))

                self.context.captured = handle
                self.context.cycle += 1
                self.status.set("Snapshot captured successfully.")
                return StageResult.succeeded(StageName.CAPTURE, handle=handle)
        except StageBusyException as e:
            return StageResult.failed(StageName.CAPTURE, e)

    async def enhance(self, instruction: Optional[str]) -> StageResult:
        """Send the captured image and instruction to the enhancer."""
        try:
            with self.guard.hold(StageName.ENHANCE):
                missing = []
                if self.context.captured is None:
                    missing.append("captured_image")
                if not instruction or not instruction.strip():
                    missing.append("instruction")
                if missing:
                    return self._fail(
                        StageName.ENHANCE,
                        MissingInputException("Capture a snapshot and enter a prompt first.", missing),
                    )

                source = self.context.captured
                started_cycle = self.context.cycle
                self.status.set("Generating enhanced image...")
                try:
                    enhanced = await self.enhancer.enhance(source, instruction.strip())
                except Exception as e:
                    error = _as_app_error(e)
                    return self._fail(StageName.ENHANCE, error, f"Error generating image: {error.message}")

                if self.context.cycle != started_cycle:
                    return self._fail(
                        StageName.ENHANCE,
                        StaleResultException(StageName.ENHANCE.value, started_cycle, self.context.cycle),
                        "Discarded an enhanced image generated from an outdated snapshot.",
                    )

                self.context.enhanced = enhanced
                if self.context.captured is source:
                    self.context.captured = None
                self.context.cycle += 1
                self.status.set("Image enhanced successfully.")
                return StageResult.succeeded(StageName.ENHANCE, handle=enhanced)
        except StageBusyException as e:
            return StageResult.failed(StageName.ENHANCE, e)

    async def generate_3d(self) -> StageResult:
        """
        Turn the enhanced image into a 3D asset, install it and render it.

        The render outcome is attached as `followup`; a render failure does
        not undo the installed asset.
        """
        try:
            with self.guard.hold(StageName.GENERATE_3D):
                enhanced = self.context.enhanced
                if enhanced is None:
                    return self._fail(
                        StageName.GENERATE_3D,
                        MissingInputException("Generate an enhanced image first.", ["enhanced_image"]),
                    )

                started_cycle = self.context.cycle
                self.status.set("Generating 3D model (sending to remote service)...")
                await self.context.progress.start()

                try:
                    asset = await self.generator.generate(enhanced)
                except Exception as e:
                    self.context.progress.stop(success=False)
                    error = _as_app_error(e)
                    return self._fail(StageName.GENERATE_3D, error, f"Error generating 3D model: {error.message}")

                if self.context.cycle != started_cycle:
                    self.context.progress.stop(success=False)
                    return self._fail(
                        StageName.GENERATE_3D,
                        StaleResultException(StageName.GENERATE_3D.value, started_cycle, self.context.cycle),
                        "Discarded a 3D model generated from an outdated image.",
                    )

                reference = self.context.slot.install(asset.handle, asset.filename)
                self.status.set("3D model returned. Loading viewer...")
        except StageBusyException as e:
            return StageResult.failed(StageName.GENERATE_3D, e)

        rendered = await self.render(reference)
        return StageResult.succeeded(StageName.GENERATE_3D, handle=asset.handle, reference=reference, followup=rendered)

    async def render(self, reference: Optional[AssetReference] = None) -> StageResult:
        """Display an installed asset (the current one by default) in the viewer."""
        try:
            with self.guard.hold(StageName.RENDER):
                reference = reference or self.context.slot.current()
                if reference is None:
                    return self._fail(StageName.RENDER, MissingInputException("Generate a 3D model first.", ["asset"]))

                self.status.set("Loading 3D libraries...")
                try:
                    scene = await self.context.viewer.display(reference.public_url)
                except LibraryUnavailableException as e:
                    message = f"Could not load 3D libraries or model: {e.message}"
                    return self._render_failed(e, message)
                except AssetHasNoSceneException as e:
                    return self._render_failed(e, "GLB has no scene to display.")
                except AssetDecodeErrorException as e:
                    return self._render_failed(e, "Error loading GLB into viewer.")
                except Exception as e:
                    error = _as_app_error(e)
                    return self._render_failed(error, f"Could not load 3D libraries or model: {error.message}")

                self.context.progress.stop(success=True)
                self.status.set("3D model loaded. Drag to rotate, scroll to zoom.")
                return StageResult.succeeded(StageName.RENDER, reference=reference, scene=scene)
        except StageBusyException as e:
            return StageResult.failed(StageName.RENDER, e)

    def _render_failed(self, error: AppException, message: str) -> StageResult:
        self.context.progress.stop(success=False)
        return self._fail(StageName.RENDER, error, message)

    # State

    def snapshot(self) -> Dict[str, Any]:
        reference = self.context.slot.current()
        return {
            "message": self.status.message,
            "is_error": self.status.is_error,
            "camera_open": self.context.camera.is_open,
            "has_captured": self.context.captured is not None,
            "has_enhanced": self.context.enhanced is not None,
            "asset_filename": reference.suggested_filename if reference else None,
            "download_enabled": reference is not None,
            "cycle": self.context.cycle,
            "busy": sorted(stage.value for stage in self.guard.busy),
        }

    async def teardown(self) -> None:
        """Release everything: progress, viewer, slot, registry, camera, HTTP clients."""
        logger.info("Tearing down generation pipeline")
        steps = (
            ("progress", self.context.progress.close),
            ("viewer", self.context.viewer.close),
            ("asset slot", self.context.slot.clear),
            ("object URLs", self.context.registry.revoke_all),
            ("camera", self.context.camera.close),
            ("3D generator client", self.generator.close),
        )
        for name, step in steps:
            try:
                result = step()
                if hasattr(result, "__await__"):
                    await result
            except Exception as e:
                logger.error(f"Teardown of {name} failed: {e}", exc_info=True)

        self.context.captured = None
        self.context.enhanced = None


def create_generation_pipeline(settings: Settings) -> GenerationPipeline:
    """Wire a pipeline from settings."""
    registry = ObjectUrlRegistry()
    container = ViewerContainer(default_width=settings.viewer_default_width)

    context = PipelineContext(
        camera=CameraService(
            default_index=settings.camera_device_index,
            facing_indices=settings.camera_facing_indices,
        ),
        registry=registry,
        slot=AssetSlot(registry),
        container=container,
        viewer=SceneViewer(
            container,
            default_toolkit_loader(settings),
            registry.resolve,
            fps=settings.viewer_fps,
        ),
        progress=ProgressReporter(container),
        status=StatusBoard(),
    )

    enhancer = ImageEnhancer(api_key=settings.gemini_api_key, model=settings.gemini_image_model)
    generator = ModelGenerator(settings.threed_api_url, timeout_seconds=settings.threed_timeout_seconds)
    return GenerationPipeline(context, enhancer, generator)
