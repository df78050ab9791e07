"""
Scene Viewer

Loads a GLB asset by its public reference, normalizes it into a unit-sized
scene around the origin and keeps one render loop publishing JPEG frames to
the viewer container.

All engine calls (context creation, rendering, release) go through a single
render thread; offscreen GL contexts are bound to the thread that made them.
"""

import asyncio
import io
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from render_engine.container import ViewerContainer
from render_engine.loader import Toolkit, ToolkitLoader
from render_engine.scene import SceneGraph, look_at, normalize_bounds
from snap3d.core.exceptions import AssetDecodeErrorException, AssetHasNoSceneException
from snap3d.core.logging_config import get_logger
from snap3d.services.object_urls import BinaryHandle

logger = get_logger("viewer")

RESIZE_HANDLER_KEY = "scene-viewer"
RENDER_LOOP_TASK = "render-loop"

FIELD_OF_VIEW_DEG = 75.0
NEAR_PLANE = 0.1
FAR_PLANE = 1000.0
LIGHT_INTENSITY = 1.5
LIGHT_POSITION = (5.0, 5.0, 5.0)
AMBIENT_LIGHT = (0xAA / 255.0,) * 3
BACKGROUND = (0.0, 0.0, 0.0, 1.0)
JPEG_QUALITY = 85


@dataclass
class EngineContext:
    """Engine objects for one display: scene, camera, light and renderer."""
    toolkit: Toolkit
    scene: Any
    camera: Any
    camera_node: Any
    light_node: Any
    renderer: Any
    width: int
    height: int

    def apply_size(self, width: int, height: int) -> None:
        self.width, self.height = width, height
        self.camera.aspectRatio = width / height
        self.renderer.viewport_width = width
        self.renderer.viewport_height = height


def build_engine_context(toolkit: Toolkit, width: int, height: int) -> EngineContext:
    engine = toolkit.engine

    scene = engine.Scene(bg_color=list(BACKGROUND), ambient_light=list(AMBIENT_LIGHT))

    camera = engine.PerspectiveCamera(
        yfov=math.radians(FIELD_OF_VIEW_DEG),
        aspectRatio=width / height,
        znear=NEAR_PLANE,
        zfar=FAR_PLANE,
    )
    camera_node = scene.add(camera, pose=np.eye(4))

    light = engine.DirectionalLight(color=np.ones(3), intensity=LIGHT_INTENSITY)
    light_node = scene.add(light, pose=look_at(LIGHT_POSITION))

    renderer = engine.OffscreenRenderer(viewport_width=width, viewport_height=height)

    return EngineContext(
        toolkit=toolkit,
        scene=scene,
        camera=camera,
        camera_node=camera_node,
        light_node=light_node,
        renderer=renderer,
        width=width,
        height=height,
    )


def decode_asset(asset_loader: Callable, data: bytes):
    """Decode GLB bytes into a scene. Raises AssetDecodeErrorException."""
    try:
        return asset_loader(io.BytesIO(data), file_type="glb", force="scene")
    except Exception as e:
        raise AssetDecodeErrorException(f"{type(e).__name__}: {e}")


def displayable_meshes(decoded) -> List[Tuple[np.ndarray, Any]]:
    """(world transform, mesh) pairs for every node that carries triangles."""
    graph = getattr(decoded, "graph", None)
    geometry = getattr(decoded, "geometry", None)
    if graph is None or not geometry:
        return []

    meshes = []
    for node_name in graph.nodes_geometry:
        transform, geometry_name = graph[node_name]
        mesh = geometry.get(geometry_name)
        faces = getattr(mesh, "faces", None)
        if faces is not None and len(faces) > 0:
            meshes.append((np.asarray(transform, dtype=float), mesh))
    return meshes


def encode_jpeg(color: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(np.asarray(color, dtype=np.uint8)).convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class SceneViewer:
    """
    Displays one asset at a time in a container.

    `display()` replaces whatever was shown before: the previous render loop
    is cancelled and awaited and its engine context released before the new
    one is built. There is at most one render loop per viewer.
    """

    def __init__(
        self,
        container: ViewerContainer,
        toolkit_loader: ToolkitLoader,
        resolve_url: Callable[[str], Optional[BinaryHandle]],
        fps: float = 30.0,
        damping_factor: float = 0.05,
    ):
        if fps <= 0:
            raise ValueError("fps must be positive")

        self.container = container
        self.toolkit_loader = toolkit_loader
        self.resolve_url = resolve_url
        self.frame_interval = 1.0 / fps
        self.damping_factor = damping_factor

        self.context: Optional[EngineContext] = None
        self.scene_graph: Optional[SceneGraph] = None
        self.controls = None
        self.asset_url: Optional[str] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._render_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="render")

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _in_render_thread(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._render_executor, fn, *args)

    async def display(self, asset_url: str) -> SceneGraph:
        """
        Load and show the asset behind `asset_url`.

        Raises:
            LibraryUnavailableException: No toolkit source worked; nothing was torn down or built
            AssetDecodeErrorException: The reference is not live or the bytes do not decode
            AssetHasNoSceneException: The asset decodes but carries no geometry
        """
        toolkit = await self.toolkit_loader.load_rendering_toolkit()

        await self.teardown()

        width, height = self.container.surface_size()
        self.context = await self._in_render_thread(build_engine_context, toolkit, width, height)
        self.container.engine_context = self.context
        self.asset_url = asset_url
        logger.info(f"Engine context ready ({width}x{height})")

        handle = self.resolve_url(asset_url)
        if handle is None:
            raise AssetDecodeErrorException("asset reference is not live", {"asset_url": asset_url})

        loop = asyncio.get_running_loop()
        decoded = await loop.run_in_executor(None, decode_asset, toolkit.asset_loader, handle.data)

        meshes = displayable_meshes(decoded)
        bounds = getattr(decoded, "bounds", None)
        if not meshes or bounds is None:
            raise AssetHasNoSceneException({"asset_url": asset_url})

        normalization = normalize_bounds(bounds)
        engine = toolkit.engine
        scene = self.context.scene

        root = engine.Node(name="model-root", matrix=normalization.root_matrix)
        scene.add_node(root)
        for transform, mesh in meshes:
            scene.add(engine.Mesh.from_trimesh(mesh), pose=transform, parent_node=root)

        self.scene_graph = SceneGraph(root=root, normalization=normalization, mesh_count=len(meshes))

        self.controls = toolkit.navigation(
            normalization.camera_position,
            enable_damping=True,
            damping_factor=self.damping_factor,
        )
        scene.set_pose(self.context.camera_node, self.controls.pose())

        self._loop_task = asyncio.create_task(
            self._render_loop(self.context, self.controls),
            name=RENDER_LOOP_TASK,
        )
        self.container.set_resize_handler(RESIZE_HANDLER_KEY, self._on_resize)

        logger.info(
            f"Displaying {len(meshes)} mesh(es), scale={normalization.scale:.4f}, "
            f"camera distance={normalization.camera_distance:.3f}"
        )
        return self.scene_graph

    def _render_frame(self, context: EngineContext) -> bytes:
        color, _depth = context.renderer.render(context.scene)
        return encode_jpeg(color)

    async def _render_loop(self, context: EngineContext, controls) -> None:
        try:
            while True:
                controls.update()
                context.scene.set_pose(context.camera_node, controls.pose())
                frame = await self._in_render_thread(self._render_frame, context)
                self.container.publish_frame(frame)
                await asyncio.sleep(self.frame_interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Render loop stopped: {e}", exc_info=True)

    def _on_resize(self, width: int, height: int) -> None:
        if self.context is not None:
            self.context.apply_size(width, height)

    def rotate(self, dx: float, dy: float) -> bool:
        if self.controls is None or self.context is None:
            return False
        self.controls.rotate(dx, dy, self.context.height)
        return True

    def zoom(self, delta: float) -> bool:
        if self.controls is None:
            return False
        self.controls.zoom(delta)
        return True

    def resize(self, client_width: int) -> Tuple[int, int]:
        return self.container.resize(client_width)

    async def teardown(self) -> None:
        """Stop the render loop and release the engine context. Safe to call repeatedly."""
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.container.remove_resize_handler(RESIZE_HANDLER_KEY)
        self.container.clear_frame()

        context, self.context = self.context, None
        self.container.engine_context = None
        self.scene_graph = None
        self.controls = None
        self.asset_url = None

        if context is not None:
            try:
                await self._in_render_thread(context.renderer.delete)
            except Exception as e:
                logger.error(f"Failed to release renderer: {e}", exc_info=True)

    async def close(self) -> None:
        await self.teardown()
        self._render_executor.shutdown(wait=False)

    def state(self) -> Dict[str, Any]:
        graph = self.scene_graph
        width, height = self.container.surface_size()
        return {
            "loaded": graph is not None,
            "running": self.is_running,
            "asset_url": self.asset_url,
            "width": self.context.width if self.context else width,
            "height": self.context.height if self.context else height,
            "mesh_count": graph.mesh_count if graph else 0,
            "scale": graph.scale if graph else None,
            "camera_distance": graph.normalization.camera_distance if graph else None,
            "frame_id": self.container.frame_id,
        }
