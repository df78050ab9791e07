"""
Image Enhancement Service

Sends the captured snapshot plus a free-text instruction to a Gemini image
model and returns the first inline image of the response.
"""

import base64
from typing import Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from snap3d.core.exceptions import (
    ConfigurationErrorException,
    NoImageReturnedException,
    RemoteErrorException,
    ServiceUnreachableException,
)
from snap3d.core.logging_config import get_logger
from snap3d.services.object_urls import BinaryHandle, IMAGE_PNG

logger = get_logger("services.enhancer")

SERVICE_NAME = "Gemini image enhancement"


def extract_inline_image(response) -> Optional[BinaryHandle]:
    """
    Return the first inline image part of a generate_content response.

    Only the first candidate is considered. Inline data may arrive as raw
    bytes (SDK objects) or base64 text (plain JSON payloads).
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        if isinstance(data, str):
            data = base64.b64decode(data)
        return BinaryHandle(data=data, content_type=getattr(inline, "mime_type", None) or IMAGE_PNG)

    return None


class ImageEnhancer:
    """
    Gemini-backed image enhancer.

    The client is created lazily from the API key so the service can start
    without credentials; enhancement then fails with a configuration error.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash-image-preview",
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _ensure_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationErrorException("GEMINI_API_KEY", "not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def enhance(self, image: BinaryHandle, instruction: str) -> BinaryHandle:
        """
        Enhance an image according to the instruction.

        Raises:
            RemoteErrorException: The API answered with an error status
            NoImageReturnedException: The response holds no inline image
        """
        client = self._ensure_client()

        logger.info(f"Requesting enhancement from {self.model} ({image.size} bytes input)")
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_text(text=instruction),
                    types.Part.from_bytes(data=image.data, mime_type=image.content_type),
                ],
                config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
            )
        except genai_errors.APIError as e:
            logger.error(f"Gemini API error {e.code}: {e.message}")
            raise RemoteErrorException(SERVICE_NAME, e.code, {"reason": e.message})
        except OSError as e:
            raise ServiceUnreachableException(SERVICE_NAME, str(e))

        enhanced = extract_inline_image(response)
        if enhanced is None:
            logger.warning("Gemini response carried no inline image data")
            raise NoImageReturnedException({"model": self.model})

        logger.info(f"Enhanced image received ({enhanced.size} bytes, {enhanced.content_type})")
        return enhanced
