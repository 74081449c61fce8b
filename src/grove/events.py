"""Progress events published by long-running grove operations."""

import asyncio
import logging
from enum import Enum

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProgressLevel(str, Enum):
    """Severity of a progress event."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    ProgressLevel.INFO: logging.INFO,
    ProgressLevel.WARNING: logging.WARNING,
    ProgressLevel.ERROR: logging.ERROR,
}


class ProgressEvent(BaseModel):
    """A single progress message."""
    message: str
    level: ProgressLevel = ProgressLevel.INFO
    worktree: str | None = None

    def __str__(self) -> str:
        if self.worktree:
            return f"[{self.worktree}] {self.message}"
        return self.message


ProgressQueue = asyncio.Queue[ProgressEvent]


class ProgressReporter:
    """Publishes events to an optional queue and to the logger.

    Without a queue, events are logged at their own level; with one, the
    consumer displays them and they are logged at DEBUG. When the queue is
    bounded and full, publishing waits for the consumer, so events are never
    dropped or reordered.
    """

    def __init__(self, queue: ProgressQueue | None = None, worktree: str | None = None):
        self.queue = queue
        self.worktree = worktree

    def for_worktree(self, worktree: str) -> "ProgressReporter":
        """A reporter that labels its events with a worktree name."""
        return ProgressReporter(self.queue, worktree)

    async def publish(self, message: str, level: ProgressLevel = ProgressLevel.INFO) -> None:
        event = ProgressEvent(message=message, level=level, worktree=self.worktree)
        if self.queue is None:
            logger.log(_LOG_LEVELS[level], str(event))
            return
        logger.debug(str(event))
        await self.queue.put(event)

    async def info(self, message: str) -> None:
        await self.publish(message, ProgressLevel.INFO)

    async def warning(self, message: str) -> None:
        await self.publish(message, ProgressLevel.WARNING)

    async def error(self, message: str) -> None:
        await self.publish(message, ProgressLevel.ERROR)
