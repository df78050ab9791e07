"""Shared pytest configuration and fixtures for the snap3d test suite."""

import json
import os
import struct
import sys
from pathlib import Path
from types import SimpleNamespace

import httpx
import numpy as np
import pytest
import pytest_asyncio
import trimesh

# Ensure the backend directory is importable
PROJECT_ROOT = Path(__file__).parent.parent
BACKEND_DIR = PROJECT_ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# No log files from the test run
os.environ.setdefault("LOG_FILE", "")

from render_engine.container import ViewerContainer  # noqa: E402
from render_engine.controls import OrbitControls  # noqa: E402
from render_engine.loader import Toolkit, ToolkitLoader, ToolkitSource  # noqa: E402
from render_engine.viewer import SceneViewer  # noqa: E402
from snap3d.services.asset_slot import AssetSlot  # noqa: E402
from snap3d.services.camera import CameraService  # noqa: E402
from snap3d.services.model_generator import ModelGenerator  # noqa: E402
from snap3d.services.object_urls import BinaryHandle, IMAGE_PNG, ObjectUrlRegistry  # noqa: E402
from snap3d.services.pipeline import GenerationPipeline, PipelineContext  # noqa: E402
from snap3d.services.progress import ProgressReporter  # noqa: E402
from snap3d.services.status import StatusBoard  # noqa: E402


# =============================================================================
# Fake capture device
# =============================================================================

class FakeVideoCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, index, opened=True, frames=True):
        self.index = index
        self.opened = opened
        self.frames = frames
        self.released = False
        self.props = {}

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def read(self):
        if not self.frames:
            return False, None
        frame = np.zeros((48, 64, 3), dtype=np.uint8)
        frame[:, :, 2] = 200
        return True, frame

    def release(self):
        self.released = True


class FakeCaptureFactory:
    def __init__(self, opened=True, frames=True):
        self.opened = opened
        self.frames = frames
        self.created = []

    def __call__(self, index):
        capture = FakeVideoCapture(index, opened=self.opened, frames=self.frames)
        self.created.append(capture)
        return capture


# =============================================================================
# Fake rendering engine (pyrender-shaped)
# =============================================================================

class FakeNode:
    def __init__(self, obj=None, name=None, matrix=None):
        self.obj = obj
        self.name = name
        self.matrix = np.eye(4) if matrix is None else np.asarray(matrix)
        self.children = []


class FakeScene:
    def __init__(self, bg_color=None, ambient_light=None):
        self.bg_color = bg_color
        self.ambient_light = ambient_light
        self.nodes = []
        self.poses = {}

    def add(self, obj, pose=None, parent_node=None):
        node = FakeNode(obj, matrix=pose)
        self.add_node(node, parent_node=parent_node)
        return node

    def add_node(self, node, parent_node=None):
        self.nodes.append(node)
        if parent_node is not None:
            parent_node.children.append(node)
        return node

    def set_pose(self, node, pose):
        self.poses[id(node)] = np.asarray(pose)


class FakeCamera:
    def __init__(self, yfov, aspectRatio, znear, zfar):
        self.yfov = yfov
        self.aspectRatio = aspectRatio
        self.znear = znear
        self.zfar = zfar


class FakeLight:
    def __init__(self, color, intensity):
        self.color = color
        self.intensity = intensity


class FakeMesh:
    def __init__(self, source):
        self.source = source

    @classmethod
    def from_trimesh(cls, mesh):
        return cls(mesh)


class FakeRenderer:
    instances = []

    def __init__(self, viewport_width, viewport_height):
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.deleted = False
        self.render_count = 0
        FakeRenderer.instances.append(self)

    def render(self, scene):
        self.render_count += 1
        color = np.full((self.viewport_height, self.viewport_width, 3), 128, dtype=np.uint8)
        depth = np.zeros((self.viewport_height, self.viewport_width), dtype=np.float32)
        return color, depth

    def delete(self):
        self.deleted = True


def make_fake_engine():
    return SimpleNamespace(
        Scene=FakeScene,
        PerspectiveCamera=FakeCamera,
        DirectionalLight=FakeLight,
        Node=FakeNode,
        Mesh=FakeMesh,
        OffscreenRenderer=FakeRenderer,
    )


class StaticToolkitSource(ToolkitSource):
    name = "static"

    def __init__(self, toolkit):
        self.toolkit = toolkit
        self.calls = 0

    async def acquire(self):
        self.calls += 1
        return self.toolkit


class FailingToolkitSource(ToolkitSource):
    def __init__(self, name, error):
        self.name = name
        self.error = error
        self.calls = 0

    async def acquire(self):
        self.calls += 1
        raise self.error


# =============================================================================
# GLB fixtures
# =============================================================================

def box_glb(extents=(4.0, 2.0, 1.0), center=(0.0, 0.0, 0.0)) -> bytes:
    box = trimesh.creation.box(extents=extents)
    box.apply_translation(center)
    return trimesh.Scene(box).export(file_type="glb")


def empty_glb() -> bytes:
    """A valid GLB container whose scene holds no nodes."""
    document = json.dumps({"asset": {"version": "2.0"}, "scenes": [{"nodes": []}], "scene": 0}).encode("utf-8")
    document += b" " * (-len(document) % 4)
    chunk = struct.pack("<II", len(document), 0x4E4F534A) + document
    header = struct.pack("<4sII", b"glTF", 2, 12 + len(chunk))
    return header + chunk


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def fake_engine():
    FakeRenderer.instances = []
    return make_fake_engine()


@pytest.fixture
def fake_toolkit(fake_engine):
    return Toolkit(engine=fake_engine, asset_loader=trimesh.load, navigation=OrbitControls)


@pytest.fixture
def png_handle():
    return BinaryHandle(data=b"\x89PNG\r\n\x1a\nfake-image", content_type=IMAGE_PNG)


@pytest.fixture
def registry():
    return ObjectUrlRegistry()


@pytest.fixture
def container():
    return ViewerContainer(client_width=800)


@pytest_asyncio.fixture
async def viewer(container, fake_toolkit, registry):
    scene_viewer = SceneViewer(
        container,
        ToolkitLoader([StaticToolkitSource(fake_toolkit)]),
        registry.resolve,
        fps=200,
    )
    yield scene_viewer
    await scene_viewer.close()


class FakeEnhancer:
    """Records calls; returns a fixed image or raises the configured error."""

    def __init__(self, result=None, error=None, gate=None):
        self.result = result or BinaryHandle(data=b"\x89PNG\r\n\x1a\nenhanced", content_type=IMAGE_PNG)
        self.error = error
        self.gate = gate
        self.calls = []

    async def enhance(self, image, instruction):
        self.calls.append((image, instruction))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class RecordingTransport:
    """httpx.MockTransport handler that records requests and answers from a callable."""

    def __init__(self, respond):
        self.respond = respond
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


@pytest.fixture
def glb_response():
    def respond(request):
        return httpx.Response(
            200,
            content=box_glb(),
            headers={"Content-Disposition": 'attachment; filename="statue.glb"'},
        )
    return RecordingTransport(respond)


def build_pipeline(viewer, registry, transport, enhancer=None, capture_factory=None):
    generator = ModelGenerator(
        "https://threed.example/generate-3d/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
    )
    context = PipelineContext(
        camera=CameraService(capture_factory=capture_factory or FakeCaptureFactory()),
        registry=registry,
        slot=AssetSlot(registry),
        container=viewer.container,
        viewer=viewer,
        progress=ProgressReporter(viewer.container, tick_interval=0.01, success_linger=0.01, failure_linger=0.01),
        status=StatusBoard(),
    )
    return GenerationPipeline(context, enhancer or FakeEnhancer(), generator)


@pytest_asyncio.fixture
async def pipeline(viewer, registry, glb_response):
    generation_pipeline = build_pipeline(viewer, registry, glb_response)
    yield generation_pipeline
    await generation_pipeline.teardown()
