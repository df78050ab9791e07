"""Unit tests for the camera capture service with a fake OpenCV driver."""

import asyncio

import cv2
import pytest

from snap3d.core.exceptions import (
    CaptureFailedException,
    DeviceNotFoundException,
    NoActiveDeviceException,
)
from snap3d.services.camera import CameraService, DeviceConstraints
from snap3d.services.object_urls import IMAGE_PNG

from conftest import FakeCaptureFactory


class TestCameraService:

    @pytest.mark.asyncio
    async def test_open_applies_ideal_constraints(self):
        factory = FakeCaptureFactory()
        camera = CameraService(capture_factory=factory)

        state = await camera.open()

        assert state.device_active is True
        assert state.frame_size == (1280, 720)
        capture = factory.created[0]
        assert capture.props[cv2.CAP_PROP_FRAME_WIDTH] == 1280
        assert capture.props[cv2.CAP_PROP_FRAME_HEIGHT] == 720
        await camera.close()

    @pytest.mark.asyncio
    async def test_open_twice_keeps_one_session(self):
        factory = FakeCaptureFactory()
        camera = CameraService(capture_factory=factory)

        await camera.open()
        await camera.open()

        assert len(factory.created) == 1
        await camera.close()

    @pytest.mark.asyncio
    async def test_overlapping_opens_keep_one_session(self):
        factory = FakeCaptureFactory()
        camera = CameraService(capture_factory=factory)

        await asyncio.gather(camera.open(), camera.open())
        await camera.close()

        assert len(factory.created) == 1
        assert all(capture.released for capture in factory.created)

    @pytest.mark.asyncio
    async def test_close_during_open_releases_device(self):
        factory = FakeCaptureFactory()
        camera = CameraService(capture_factory=factory)

        await asyncio.gather(camera.open(), camera.close())

        if camera.is_open:
            await camera.close()
        assert all(capture.released for capture in factory.created)

    @pytest.mark.asyncio
    async def test_facing_preference_maps_to_index(self):
        factory = FakeCaptureFactory()
        camera = CameraService(default_index=0, facing_indices={"environment": 2}, capture_factory=factory)

        await camera.open(DeviceConstraints(facing_mode="environment"))
        assert factory.created[0].index == 2
        await camera.close()

        await camera.open(DeviceConstraints(facing_mode="user"))
        assert factory.created[1].index == 0
        await camera.close()

    @pytest.mark.asyncio
    async def test_missing_device(self):
        camera = CameraService(default_index=97, capture_factory=FakeCaptureFactory(opened=False))

        with pytest.raises(DeviceNotFoundException):
            await camera.open()
        assert camera.is_open is False

    @pytest.mark.asyncio
    async def test_capture_returns_png(self):
        camera = CameraService(capture_factory=FakeCaptureFactory())
        await camera.open()

        handle = await camera.capture()

        assert handle.content_type == IMAGE_PNG
        assert handle.data.startswith(b"\x89PNG")
        assert camera.state.last_frame is handle
        await camera.close()

    @pytest.mark.asyncio
    async def test_capture_without_session(self):
        camera = CameraService(capture_factory=FakeCaptureFactory())
        with pytest.raises(NoActiveDeviceException):
            await camera.capture()

    @pytest.mark.asyncio
    async def test_capture_without_frame(self):
        camera = CameraService(capture_factory=FakeCaptureFactory(frames=False))
        await camera.open()

        with pytest.raises(CaptureFailedException):
            await camera.capture()
        await camera.close()

    @pytest.mark.asyncio
    async def test_close_releases_device(self):
        factory = FakeCaptureFactory()
        camera = CameraService(capture_factory=factory)
        await camera.open()

        await camera.close()
        await camera.close()

        assert factory.created[0].released is True
        assert camera.is_open is False
        assert camera.state.last_frame is None
