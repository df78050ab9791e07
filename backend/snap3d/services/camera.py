"""
Camera Capture Service

Owns the single device session: acquisition with 1280x720 ideal constraints
and a rear-facing preference, PNG snapshots, and release.
"""

import asyncio
import os
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import cv2

from snap3d.core.exceptions import (
    CaptureFailedException,
    DeviceNotFoundException,
    NoActiveDeviceException,
    PermissionDeniedException,
)
from snap3d.core.logging_config import get_logger
from snap3d.services.object_urls import BinaryHandle, IMAGE_PNG

logger = get_logger("services.camera")


@dataclass(frozen=True)
class DeviceConstraints:
    width: int = 1280
    height: int = 720
    facing_mode: str = "environment"
    audio: bool = False


@dataclass
class CaptureState:
    device_active: bool = False
    last_frame: Optional[BinaryHandle] = None
    device_index: Optional[int] = None
    frame_size: Optional[tuple] = None


class CameraService:
    """
    Single camera session backed by OpenCV.

    Blocking driver calls run in the default executor; a lock serializes
    access to the underlying capture object.
    """

    def __init__(
        self,
        default_index: int = 0,
        facing_indices: Optional[Dict[str, int]] = None,
        capture_factory: Callable = cv2.VideoCapture,
    ):
        self.default_index = default_index
        self.facing_indices = facing_indices or {}
        self._capture_factory = capture_factory
        self._capture = None
        self._lock = threading.Lock()
        # Held across a whole open or close so at most one session exists
        self._session_lock = asyncio.Lock()
        self.state = CaptureState()

    @property
    def is_open(self) -> bool:
        return self.state.device_active

    def resolve_device_index(self, constraints: DeviceConstraints) -> int:
        """Map the facing preference to a device index; fall back to the default."""
        return self.facing_indices.get(constraints.facing_mode, self.default_index)

    async def open(self, constraints: Optional[DeviceConstraints] = None) -> CaptureState:
        """Acquire the device. Opening an already open session is a no-op."""
        async with self._session_lock:
            if self.is_open:
                return self.state

            constraints = constraints or DeviceConstraints()
            index = self.resolve_device_index(constraints)
            logger.info(
                f"Opening camera {index} (ideal {constraints.width}x{constraints.height}, "
                f"facing={constraints.facing_mode}, audio={constraints.audio})"
            )

            loop = asyncio.get_running_loop()
            capture, frame_size = await loop.run_in_executor(None, self._open_sync, index, constraints)

            self._capture = capture
            self.state = CaptureState(device_active=True, device_index=index, frame_size=frame_size)
            logger.info(f"Camera {index} opened at {frame_size[0]}x{frame_size[1]}")
            return self.state

    def _open_sync(self, index: int, constraints: DeviceConstraints):
        with self._lock:
            capture = self._capture_factory(index)
            if not capture.isOpened():
                capture.release()
                raise self._classify_open_failure(index)

            # Ideal constraints; the driver picks the closest mode it supports
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

            width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)) or constraints.width
            height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)) or constraints.height
            return capture, (width, height)

    @staticmethod
    def _classify_open_failure(index: int) -> Exception:
        device = f"/dev/video{index}"
        if sys.platform.startswith("linux") and os.path.exists(device):
            if not os.access(device, os.R_OK | os.W_OK):
                return PermissionDeniedException(device)
        return DeviceNotFoundException(device if sys.platform.startswith("linux") else str(index))

    async def capture(self) -> BinaryHandle:
        """Grab one frame and return it PNG-encoded."""
        if not self.is_open or self._capture is None:
            raise NoActiveDeviceException()

        loop = asyncio.get_running_loop()
        handle = await loop.run_in_executor(None, self._capture_sync)
        self.state.last_frame = handle
        return handle

    def _capture_sync(self) -> BinaryHandle:
        with self._lock:
            if self._capture is None:
                raise NoActiveDeviceException()
            ok, frame = self._capture.read()

        if not ok or frame is None or frame.size == 0:
            raise CaptureFailedException("no frame")

        encoded, buffer = cv2.imencode(".png", frame)
        if not encoded:
            raise CaptureFailedException("encode failed")

        return BinaryHandle(data=buffer.tobytes(), content_type=IMAGE_PNG)

    async def close(self) -> None:
        """Release the device. Closing a closed session is a no-op."""
        async with self._session_lock:
            capture, self._capture = self._capture, None
            was_open = self.state.device_active
            self.state = CaptureState()

            if capture is not None:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._release_sync, capture)

        if was_open:
            logger.info("Camera closed")

    def _release_sync(self, capture) -> None:
        with self._lock:
            capture.release()
