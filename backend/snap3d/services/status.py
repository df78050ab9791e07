"""Human-readable status line shown to the operator."""

from dataclasses import dataclass
from datetime import datetime, timezone

from snap3d.core.logging_config import get_logger

logger = get_logger("status")

READY_MESSAGE = "Ready to start. Open the camera to begin."


@dataclass
class StatusMessage:
    message: str
    is_error: bool
    updated_at: str


class StatusBoard:
    def __init__(self, message: str = READY_MESSAGE):
        self.current = StatusMessage(message, False, datetime.now(timezone.utc).isoformat())

    def set(self, message: str, is_error: bool = False) -> StatusMessage:
        self.current = StatusMessage(message, is_error, datetime.now(timezone.utc).isoformat())
        if is_error:
            logger.error(message)
        else:
            logger.info(message)
        return self.current

    @property
    def message(self) -> str:
        return self.current.message

    @property
    def is_error(self) -> bool:
        return self.current.is_error
