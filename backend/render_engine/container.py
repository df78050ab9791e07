"""
Viewer container: the surface the renderer draws into.

Holds the client width used for sizing, the keyed resize handlers, overlay
elements (progress indicator) and the most recently rendered frame.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from snap3d.core.logging_config import get_logger

logger = get_logger("viewer.container")

MIN_SURFACE_HEIGHT = 400
SURFACE_ASPECT = 0.75

_overlay_ids = itertools.count(1)


def surface_size(client_width: int, default_width: int = 800) -> Tuple[int, int]:
    """Surface size for a container width: height = max(400, width * 0.75)."""
    width = int(client_width) if client_width and client_width > 0 else default_width
    height = int(max(MIN_SURFACE_HEIGHT, width * SURFACE_ASPECT))
    return width, height


@dataclass
class Overlay:
    text: str
    style: str = "progress"
    id: int = field(default_factory=lambda: next(_overlay_ids))


class ViewerContainer:
    def __init__(self, client_width: int = 0, default_width: int = 800):
        self.client_width = client_width
        self.default_width = default_width
        self.engine_context = None
        self.overlays: List[Overlay] = []
        self._resize_handlers: Dict[str, Callable[[int, int], None]] = {}
        self._frame: Optional[bytes] = None
        self._frame_id = 0
        self._frame_event: Optional[asyncio.Event] = None

    def surface_size(self) -> Tuple[int, int]:
        return surface_size(self.client_width, self.default_width)

    # Resize handling

    @property
    def resize_handlers(self) -> Dict[str, Callable[[int, int], None]]:
        return dict(self._resize_handlers)

    def set_resize_handler(self, key: str, handler: Callable[[int, int], None]) -> None:
        """Register a resize handler; a second registration under the same key replaces the first."""
        self._resize_handlers[key] = handler

    def remove_resize_handler(self, key: str) -> None:
        self._resize_handlers.pop(key, None)

    def resize(self, client_width: int) -> Tuple[int, int]:
        self.client_width = client_width
        width, height = self.surface_size()
        for key, handler in list(self._resize_handlers.items()):
            try:
                handler(width, height)
            except Exception as e:
                logger.error(f"Resize handler {key!r} failed: {e}", exc_info=True)
        return width, height

    # Overlays

    def add_overlay(self, overlay: Overlay) -> Overlay:
        self.overlays.append(overlay)
        return overlay

    def remove_overlay(self, overlay: Overlay) -> bool:
        try:
            self.overlays.remove(overlay)
            return True
        except ValueError:
            return False

    # Frames

    @property
    def frame(self) -> Optional[bytes]:
        return self._frame

    @property
    def frame_id(self) -> int:
        return self._frame_id

    def publish_frame(self, frame: bytes) -> int:
        self._frame = frame
        self._frame_id += 1
        if self._frame_event is not None:
            self._frame_event.set()
            self._frame_event = None
        return self._frame_id

    def clear_frame(self) -> None:
        self._frame = None

    async def wait_for_frame(self, after_id: int, timeout: float = 5.0) -> Optional[bytes]:
        """Wait until a frame newer than `after_id` is published; None on timeout."""
        if self._frame_id > after_id and self._frame is not None:
            return self._frame

        if self._frame_event is None:
            self._frame_event = asyncio.Event()
        event = self._frame_event

        try:
            await asyncio.wait_for(event.wait(), timeout)
        except asyncio.TimeoutError:
            return None
        return self._frame
