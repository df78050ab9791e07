"""API tests through httpx.ASGITransport with a fake-backed pipeline."""

import httpx
import pytest
import pytest_asyncio

from snap3d.core.config import Settings
from snap3d.core.exceptions import ErrorCode

import main


@pytest_asyncio.fixture
async def client(pipeline):
    main.app.state.pipeline = pipeline
    main.app.state.settings = Settings()
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    main.app.state.pipeline = None
    main.app.state.settings = None


async def prepare_model(client):
    assert (await client.post("/api/v1/camera/open")).status_code == 200
    assert (await client.post("/api/v1/capture")).status_code == 200
    response = await client.post("/api/v1/enhance", json={"instruction": "bronze statue"})
    assert response.status_code == 200
    return await client.post("/api/v1/generate-3d")


# =============================================================================
# Service routes
# =============================================================================


class TestServiceRoutes:

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    @pytest.mark.asyncio
    async def test_health_degraded_without_remote_services(self, client):
        data = (await client.get("/health")).json()

        assert data["status"] == "degraded"
        assert data["checks"]["enhancement_service"]["configured"] is False
        assert data["checks"]["generation_service"]["configured"] is False

    @pytest.mark.asyncio
    async def test_request_id_propagated(self, client):
        response = await client.get("/api/v1/status", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_unknown_route_uses_error_body(self, client):
        response = await client.get("/api/v1/nothing-here", headers={"X-Request-ID": "req-404"})

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["type"] == "user_error"
        assert error["request_id"] == "req-404"

    @pytest.mark.asyncio
    async def test_initial_status(self, client):
        data = (await client.get("/api/v1/status")).json()

        assert data["camera_open"] is False
        assert data["download_enabled"] is False
        assert data["busy"] == []


# =============================================================================
# Camera routes
# =============================================================================


class TestCameraRoutes:

    @pytest.mark.asyncio
    async def test_open_and_close(self, client):
        response = await client.post("/api/v1/camera/open", json={"width": 640, "height": 480})
        assert response.status_code == 200
        assert response.json()["device_active"] is True

        response = await client.post("/api/v1/camera/close")
        assert response.json()["device_active"] is False

    @pytest.mark.asyncio
    async def test_toggle(self, client):
        assert (await client.post("/api/v1/camera/toggle")).json()["device_active"] is True
        assert (await client.post("/api/v1/camera/toggle")).json()["device_active"] is False

    @pytest.mark.asyncio
    async def test_remote_plain_http_client_rejected(self, pipeline):
        main.app.state.pipeline = pipeline
        main.app.state.settings = Settings()
        transport = httpx.ASGITransport(app=main.app, client=("203.0.113.7", 5000))
        try:
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as remote:
                response = await remote.post("/api/v1/camera/open")
        finally:
            main.app.state.pipeline = None
            main.app.state.settings = None

        assert response.status_code == 403
        assert response.json()["error"]["code"] == ErrorCode.DEVICE_INSECURE_CONTEXT.value

    @pytest.mark.asyncio
    async def test_invalid_facing_mode(self, client):
        response = await client.post("/api/v1/camera/open", json={"facing_mode": "sideways"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == ErrorCode.VALIDATION_INVALID_INPUT.value


# =============================================================================
# Generation routes
# =============================================================================


class TestGenerationRoutes:

    @pytest.mark.asyncio
    async def test_capture_without_camera(self, client):
        response = await client.post("/api/v1/capture")

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == ErrorCode.DEVICE_NOT_ACTIVE.value
        assert error["type"] == "user_error"
        assert error["message"] == "Open the camera first."

    @pytest.mark.asyncio
    async def test_capture_preview(self, client):
        await client.post("/api/v1/camera/open")
        data = (await client.post("/api/v1/capture")).json()

        assert data["status"] == "succeeded"
        assert data["image"]["url"] == "/api/v1/images/captured"

        preview = await client.get("/api/v1/images/captured")
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "image/png"

    @pytest.mark.asyncio
    async def test_enhance_blank_instruction(self, client):
        await client.post("/api/v1/camera/open")
        await client.post("/api/v1/capture")

        response = await client.post("/api/v1/enhance", json={"instruction": "   "})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == ErrorCode.VALIDATION_MISSING_INPUT.value
        assert error["details"]["missing"] == ["instruction"]

    @pytest.mark.asyncio
    async def test_generate_without_enhanced_image(self, client, glb_response):
        response = await client.post("/api/v1/generate-3d")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == ErrorCode.VALIDATION_MISSING_INPUT.value
        assert glb_response.requests == []

    @pytest.mark.asyncio
    async def test_generate_installs_and_renders(self, client):
        response = await prepare_model(client)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["asset"]["filename"] == "statue.glb"
        assert data["asset"]["public_url"].startswith("blob:snap3d/")
        assert data["render"]["status"] == "succeeded"
        assert data["scene"]["scale"] == pytest.approx(0.45)

    @pytest.mark.asyncio
    async def test_unknown_preview(self, client):
        response = await client.get("/api/v1/images/thumbnail")
        assert response.status_code == 404


# =============================================================================
# Asset routes
# =============================================================================


class TestAssetRoutes:

    @pytest.mark.asyncio
    async def test_download_before_install(self, client):
        response = await client.get("/api/v1/assets/current/download")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == ErrorCode.VIEWER_ASSET_NOT_INSTALLED.value

    @pytest.mark.asyncio
    async def test_download_uses_suggested_filename(self, client):
        await prepare_model(client)

        response = await client.get("/api/v1/assets/current/download")

        assert response.status_code == 200
        assert response.headers["content-type"] == "model/gltf-binary"
        assert 'filename="statue.glb"' in response.headers["content-disposition"]
        assert response.content[:4] == b"glTF"

        status = (await client.get("/api/v1/status")).json()
        assert status["download_enabled"] is True
        assert status["asset_filename"] == "statue.glb"

    @pytest.mark.asyncio
    async def test_resolve_live_and_revoked_token(self, client):
        first = (await prepare_model(client)).json()["asset"]["token"]

        live = await client.get(f"/api/v1/assets/{first}")
        assert live.status_code == 200

        await client.post("/api/v1/generate-3d")
        revoked = await client.get(f"/api/v1/assets/{first}")
        assert revoked.status_code == 404


# =============================================================================
# Viewer routes
# =============================================================================


class TestViewerRoutes:

    @pytest.mark.asyncio
    async def test_viewer_state_before_model(self, client):
        data = (await client.get("/api/v1/viewer")).json()

        assert data["loaded"] is False
        assert data["running"] is False
        assert (await client.get("/api/v1/viewer/frame")).status_code == 404

    @pytest.mark.asyncio
    async def test_frame_resize_and_navigate(self, client, pipeline):
        await prepare_model(client)
        await pipeline.context.container.wait_for_frame(0, timeout=2.0)

        frame = await client.get("/api/v1/viewer/frame")
        assert frame.status_code == 200
        assert frame.headers["content-type"] == "image/jpeg"

        resized = (await client.post("/api/v1/viewer/resize", json={"client_width": 320})).json()
        assert (resized["width"], resized["height"]) == (320, 400)

        before = pipeline.context.viewer.controls.position.copy()
        navigated = await client.post("/api/v1/viewer/navigate", json={"dx": 50, "zoom": -1})
        assert navigated.status_code == 200
        assert navigated.json()["loaded"] is True
        pipeline.context.viewer.controls.update()
        assert (pipeline.context.viewer.controls.position != before).any()
