"""Unit tests for the image-to-3D client and Content-Disposition parsing."""

import httpx
import pytest

from snap3d.core.exceptions import (
    ConfigurationErrorException,
    RemoteErrorException,
    ServiceTimeoutException,
    ServiceUnreachableException,
)
from snap3d.services.model_generator import ModelGenerator, parse_content_disposition
from snap3d.services.object_urls import MODEL_GLB


# =============================================================================
# Content-Disposition parsing
# =============================================================================


class TestParseContentDisposition:

    @pytest.mark.parametrize(
        "header, expected",
        [
            ('attachment; filename="statue.glb"', "statue.glb"),
            ("attachment; filename=statue.glb", "statue.glb"),
            ("attachment; filename='statue.glb'", "statue.glb"),
            ("attachment; FILENAME=\"Statue.GLB\"", "Statue.GLB"),
            ("attachment; filename*=UTF-8''caf%C3%A9%20model.glb", "café model.glb"),
            ('attachment; filename="model%201.glb"; size=100', "model 1.glb"),
            ('attachment; filename="../../etc/passwd"', "passwd"),
        ],
    )
    def test_filenames(self, header, expected):
        assert parse_content_disposition(header) == expected

    def test_absent_header(self):
        assert parse_content_disposition(None) == "model.glb"
        assert parse_content_disposition("") == "model.glb"

    def test_no_filename_parameter(self):
        assert parse_content_disposition("inline") == "model.glb"

    def test_undecodable_percent_escape(self):
        assert parse_content_disposition("attachment; filename=%FF%FE.glb") == "model.glb"


# =============================================================================
# ModelGenerator
# =============================================================================


def generator_for(handler) -> ModelGenerator:
    return ModelGenerator(
        "https://threed.example/generate-3d/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestModelGenerator:

    @pytest.mark.asyncio
    async def test_uploads_multipart_image(self, png_handle):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.read()
            return httpx.Response(
                200,
                content=b"glTF-binary",
                headers={"Content-Disposition": 'attachment; filename="statue.glb"'},
            )

        generator = generator_for(handler)
        asset = await generator.generate(png_handle)
        await generator.close()

        assert seen["method"] == "POST"
        assert seen["content_type"].startswith("multipart/form-data")
        assert b'name="image"; filename="image.png"' in seen["body"]
        assert png_handle.data in seen["body"]
        assert asset.filename == "statue.glb"
        assert asset.handle.data == b"glTF-binary"
        assert asset.handle.content_type == MODEL_GLB

    @pytest.mark.asyncio
    async def test_default_filename(self, png_handle):
        generator = generator_for(lambda request: httpx.Response(200, content=b"glTF"))
        asset = await generator.generate(png_handle)
        await generator.close()

        assert asset.filename == "model.glb"

    @pytest.mark.asyncio
    async def test_non_2xx_is_remote_error(self, png_handle):
        generator = generator_for(lambda request: httpx.Response(503, content=b"busy"))

        with pytest.raises(RemoteErrorException) as exc_info:
            await generator.generate(png_handle)
        await generator.close()

        assert exc_info.value.remote_status == 503
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_empty_body_is_remote_error(self, png_handle):
        generator = generator_for(lambda request: httpx.Response(200, content=b""))

        with pytest.raises(RemoteErrorException):
            await generator.generate(png_handle)
        await generator.close()

    @pytest.mark.asyncio
    async def test_timeout(self, png_handle):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        generator = generator_for(handler)
        with pytest.raises(ServiceTimeoutException):
            await generator.generate(png_handle)
        await generator.close()

    @pytest.mark.asyncio
    async def test_connection_failure(self, png_handle):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        generator = generator_for(handler)
        with pytest.raises(ServiceUnreachableException):
            await generator.generate(png_handle)
        await generator.close()

    @pytest.mark.asyncio
    async def test_unconfigured_endpoint(self, png_handle):
        generator = ModelGenerator(None)
        assert generator.configured is False

        with pytest.raises(ConfigurationErrorException):
            await generator.generate(png_handle)
        await generator.close()
