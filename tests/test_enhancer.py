"""Unit tests for the Gemini enhancement client with a fake SDK client."""

import base64
from types import SimpleNamespace

import pytest
from google.genai import errors as genai_errors

from snap3d.core.exceptions import (
    ConfigurationErrorException,
    NoImageReturnedException,
    RemoteErrorException,
)
from snap3d.services.enhancer import ImageEnhancer, extract_inline_image


def part(text=None, data=None, mime_type="image/png"):
    inline = SimpleNamespace(data=data, mime_type=mime_type) if data is not None else None
    return SimpleNamespace(text=text, inline_data=inline)


def response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


class FakeModels:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return self.result


def fake_client(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


class TestExtractInlineImage:

    def test_first_inline_part_wins(self):
        result = extract_inline_image(response(
            part(text="Here you go"),
            part(data=b"first", mime_type="image/jpeg"),
            part(data=b"second"),
        ))
        assert result.data == b"first"
        assert result.content_type == "image/jpeg"

    def test_base64_payload(self):
        encoded = base64.b64encode(b"raw-bytes").decode("ascii")
        result = extract_inline_image(response(part(data=encoded)))
        assert result.data == b"raw-bytes"

    def test_no_image(self):
        assert extract_inline_image(response(part(text="no image today"))) is None
        assert extract_inline_image(SimpleNamespace(candidates=[])) is None


class TestImageEnhancer:

    @pytest.mark.asyncio
    async def test_sends_text_then_image(self, png_handle):
        models = FakeModels(result=response(part(data=b"enhanced")))
        enhancer = ImageEnhancer(model="image-model", client=fake_client(models))

        result = await enhancer.enhance(png_handle, "make it a bronze statue")

        assert result.data == b"enhanced"
        call = models.calls[0]
        assert call["model"] == "image-model"
        text_part, image_part = call["contents"]
        assert text_part.text == "make it a bronze statue"
        assert image_part.inline_data.data == png_handle.data
        assert image_part.inline_data.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_no_image_returned(self, png_handle):
        enhancer = ImageEnhancer(client=fake_client(FakeModels(result=response(part(text="sorry")))))

        with pytest.raises(NoImageReturnedException):
            await enhancer.enhance(png_handle, "enhance")

    @pytest.mark.asyncio
    async def test_api_error_carries_status(self, png_handle):
        error = genai_errors.APIError(429, {"error": {"message": "quota exceeded", "status": "RESOURCE_EXHAUSTED"}})
        enhancer = ImageEnhancer(client=fake_client(FakeModels(error=error)))

        with pytest.raises(RemoteErrorException) as exc_info:
            await enhancer.enhance(png_handle, "enhance")

        assert exc_info.value.remote_status == 429
        assert exc_info.value.message == "API error 429"

    @pytest.mark.asyncio
    async def test_missing_key(self, png_handle):
        enhancer = ImageEnhancer(api_key=None)
        assert enhancer.configured is False

        with pytest.raises(ConfigurationErrorException):
            await enhancer.enhance(png_handle, "enhance")
