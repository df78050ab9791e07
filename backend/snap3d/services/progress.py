"""
Generation Progress Reporter

Shows an elapsed-time overlay on the viewer container while a 3D model is
being generated, then a short-lived outcome label.
"""

import asyncio
from typing import Optional

from render_engine.container import Overlay, ViewerContainer
from snap3d.core.logging_config import get_logger

logger = get_logger("services.progress")

PROGRESS_LABEL = "Generating 3D model"
READY_LABEL = "Model ready"
FAILED_LABEL = "Generation failed"
TICK_TASK = "progress-tick"


def format_elapsed(seconds: float) -> str:
    """Elapsed seconds as mm:ss (minutes keep growing past 59)."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def progress_text(seconds: float) -> str:
    return f"{PROGRESS_LABEL} - {format_elapsed(seconds)}"


class ProgressReporter:
    def __init__(
        self,
        container: ViewerContainer,
        tick_interval: float = 0.25,
        success_linger: float = 0.9,
        failure_linger: float = 1.5,
    ):
        self.container = container
        self.tick_interval = tick_interval
        self.success_linger = success_linger
        self.failure_linger = failure_linger
        self.overlay: Optional[Overlay] = None
        self._task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> Overlay:
        """Start a fresh timer, fully stopping any running one first."""
        await self._halt()
        if self.overlay is not None:
            self.container.remove_overlay(self.overlay)
            self.overlay = None

        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        self.overlay = self.container.add_overlay(Overlay(text=progress_text(0)))
        self._task = asyncio.create_task(self._tick(self.overlay), name=TICK_TASK)
        logger.debug("Progress timer started")
        return self.overlay

    async def _tick(self, overlay: Overlay) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.tick_interval)
            overlay.text = progress_text(loop.time() - self._started_at)

    async def _halt(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def stop(self, success: bool = True) -> None:
        """Stop ticking and show the outcome; the overlay removes itself shortly after."""
        try:
            task, self._task = self._task, None
            if task is not None:
                task.cancel()

            overlay, self.overlay = self.overlay, None
            if overlay is None:
                return

            if success:
                overlay.text, overlay.style, linger = READY_LABEL, "ready", self.success_linger
            else:
                overlay.text, overlay.style, linger = FAILED_LABEL, "failed", self.failure_linger

            asyncio.get_running_loop().call_later(linger, self.container.remove_overlay, overlay)
        except Exception as e:
            logger.error(f"Failed to stop progress timer: {e}", exc_info=True)

    async def close(self) -> None:
        await self._halt()
        if self.overlay is not None:
            self.container.remove_overlay(self.overlay)
            self.overlay = None
