"""
Object URL Registry

Mints short-lived, process-scoped reference URLs for in-memory binary data and
resolves them back to their bytes until they are revoked. Used for the
generated GLB asset (download and viewer) and nothing else outlives a revoke.
"""

import uuid
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

URL_PREFIX = "blob:snap3d/"

IMAGE_PNG = "image/png"
MODEL_GLB = "model/gltf-binary"


@dataclass(frozen=True)
class BinaryHandle:
    """Opaque in-memory payload plus its content kind."""
    data: bytes = field(repr=False)
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class ObjectUrlRegistry:
    """
    Registry of live object URLs.

    Features:
    - UUID tokens wrapped in a `blob:snap3d/<token>` URL
    - Thread-safe operations
    - Metadata tracking (creation time, size, content type)
    - Revocation is idempotent
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, BinaryHandle] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def token_of(url: str) -> str:
        """Extract the token from an object URL (bare tokens pass through)."""
        if url.startswith(URL_PREFIX):
            return url[len(URL_PREFIX):]
        return url

    @staticmethod
    def url_for(token: str) -> str:
        return f"{URL_PREFIX}{token}"

    def create(self, handle: BinaryHandle) -> str:
        """
        Register a handle and return a fresh object URL for it.

        Raises:
            ValueError: If the handle carries no data
        """
        if not handle.data:
            raise ValueError("handle data cannot be empty")

        token = str(uuid.uuid4())
        with self._lock:
            self._entries[token] = handle
            self._metadata[token] = {
                "content_type": handle.content_type,
                "size": handle.size,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }

        url = self.url_for(token)
        logger.debug(f"Created object URL {url} ({handle.size} bytes, {handle.content_type})")
        return url

    def resolve(self, url: str) -> Optional[BinaryHandle]:
        """Return the handle behind a live URL, or None once revoked/unknown."""
        with self._lock:
            return self._entries.get(self.token_of(url))

    def revoke(self, url: str) -> bool:
        """
        Revoke an object URL.

        Returns:
            bool: True if a live URL was revoked, False if it was unknown
        """
        token = self.token_of(url)
        with self._lock:
            if token not in self._entries:
                return False
            del self._entries[token]
            del self._metadata[token]

        logger.debug(f"Revoked object URL {url}")
        return True

    def revoke_all(self) -> int:
        """Revoke every live URL. Returns the number revoked."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._metadata.clear()

        if count:
            logger.info(f"Revoked {count} outstanding object URL(s)")
        return count

    def get_metadata(self, url: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            metadata = self._metadata.get(self.token_of(url))
            return metadata.copy() if metadata else None

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._entries)
