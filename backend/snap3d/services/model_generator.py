"""
3D Model Generation Client

Uploads an image to the remote image-to-3D endpoint as multipart form data
and returns the binary GLB it answers with, plus a suggested filename taken
from the Content-Disposition header.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote

import httpx

from snap3d.core.exceptions import (
    ConfigurationErrorException,
    RemoteErrorException,
    ServiceTimeoutException,
    ServiceUnreachableException,
)
from snap3d.core.logging_config import get_logger
from snap3d.services.asset_slot import DEFAULT_ASSET_FILENAME
from snap3d.services.object_urls import BinaryHandle, MODEL_GLB

logger = get_logger("services.model_generator")

SERVICE_NAME = "3D generation service"

_FILENAME_PATTERN = re.compile(r"""filename\*?=(?:UTF-8'')?["']?([^;"']+)""", re.IGNORECASE)


def parse_content_disposition(header: Optional[str], default: str = DEFAULT_ASSET_FILENAME) -> str:
    """
    Extract a filename from a Content-Disposition header.

    Handles quoted, unquoted and RFC 5987 (`filename*=UTF-8''...`) forms.
    Any directory part is dropped. Falls back to `default`.
    """
    if not header:
        return default

    match = _FILENAME_PATTERN.search(header)
    if not match:
        return default

    try:
        filename = unquote(match.group(1).strip(), errors="strict")
    except UnicodeDecodeError:
        return default

    filename = PurePosixPath(filename.replace("\\", "/")).name
    return filename or default


@dataclass(frozen=True)
class GeneratedAsset:
    handle: BinaryHandle
    filename: str


class ModelGenerator:
    """Client for the image-to-3D HTTP endpoint."""

    def __init__(
        self,
        endpoint: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 300.0,
    ):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            follow_redirects=True,
        )

    @property
    def configured(self) -> bool:
        return bool(self.endpoint)

    async def close(self):
        """Close HTTP client connections."""
        await self.http_client.aclose()
        logger.info("HTTP client connections closed")

    async def generate(self, image: BinaryHandle) -> GeneratedAsset:
        """
        Generate a 3D asset from an image.

        Raises:
            RemoteErrorException: Non-2xx response
            ServiceTimeoutException: The call exceeded the timeout
            ServiceUnreachableException: Transport failure
        """
        if not self.endpoint:
            raise ConfigurationErrorException("THREED_API_URL", "not configured")

        files = {"image": ("image.png", image.data, image.content_type)}

        logger.info(f"Uploading {image.size} bytes to {self.endpoint}")
        try:
            response = await self.http_client.post(self.endpoint, files=files)
        except httpx.TimeoutException:
            raise ServiceTimeoutException(SERVICE_NAME, self.timeout_seconds)
        except httpx.HTTPError as e:
            raise ServiceUnreachableException(SERVICE_NAME, str(e))

        if response.is_error:
            logger.error(f"3D generation failed with status {response.status_code}")
            raise RemoteErrorException(SERVICE_NAME, response.status_code)

        if not response.content:
            raise RemoteErrorException(SERVICE_NAME, response.status_code, {"reason": "empty body"})

        filename = parse_content_disposition(response.headers.get("content-disposition"))
        handle = BinaryHandle(data=response.content, content_type=MODEL_GLB)

        logger.info(f"3D model returned: {filename} ({handle.size} bytes)")
        return GeneratedAsset(handle=handle, filename=filename)
