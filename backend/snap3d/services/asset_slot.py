"""
Asset Slot

Owns the one installed generated asset and its public reference URL. Only
`install` and `clear` ever revoke a reference, so a URL handed to the viewer
or to a download stays valid until the asset is superseded.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from snap3d.core.logging_config import get_logger
from snap3d.services.object_urls import BinaryHandle, ObjectUrlRegistry

logger = get_logger("services.asset_slot")

DEFAULT_ASSET_FILENAME = "model.glb"


@dataclass(frozen=True)
class AssetReference:
    handle: BinaryHandle
    public_url: str
    suggested_filename: str

    @property
    def token(self) -> str:
        return ObjectUrlRegistry.token_of(self.public_url)


class AssetSlot:
    """Single-reference slot for the current generated asset."""

    def __init__(self, registry: ObjectUrlRegistry):
        self.registry = registry
        self._lock = threading.Lock()
        self._current: Optional[AssetReference] = None

    def install(self, handle: BinaryHandle, filename: Optional[str] = None) -> AssetReference:
        """
        Install a new asset, revoking the previous public reference.

        The new URL is minted and installed first; the superseded one is
        revoked right after, before this call returns.
        """
        reference = AssetReference(
            handle=handle,
            public_url=self.registry.create(handle),
            suggested_filename=filename or DEFAULT_ASSET_FILENAME,
        )

        with self._lock:
            previous, self._current = self._current, reference

        if previous is not None:
            self._revoke(previous)

        logger.info(
            f"Installed asset {reference.suggested_filename} "
            f"({handle.size} bytes) at {reference.public_url}"
        )
        return reference

    def current(self) -> Optional[AssetReference]:
        with self._lock:
            return self._current

    def clear(self) -> None:
        """Revoke and empty the slot. Clearing an empty slot is a no-op."""
        with self._lock:
            previous, self._current = self._current, None

        if previous is not None:
            self._revoke(previous)
            logger.info(f"Cleared asset slot ({previous.suggested_filename})")

    def _revoke(self, reference: AssetReference) -> None:
        # Never raises; leaked URLs are reclaimed by registry teardown.
        try:
            self.registry.revoke(reference.public_url)
        except Exception as e:
            logger.error(f"Failed to revoke {reference.public_url}: {e}", exc_info=True)
