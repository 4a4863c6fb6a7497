"""
Fire-and-forget profile resync.

submit() schedules a resync on the running event loop and returns at once.
A resync that raises, or reports success=False, is written to the dead-letter
channel: the ``app.services.background.dead_letter`` logger plus a bounded
in-memory deque for inspection. Nothing is ever re-raised to the submitter.

There is no per-user lock: two resyncs for the same user may overlap, and
since each is a full recompute-and-upsert the last writer wins.
"""
import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Deque, Set

from app.database import utcnow
from app.schemas.insights import ActionResult

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger(f"{__name__}.dead_letter")

DEAD_LETTER_CAPACITY = 100

ResyncFn = Callable[[uuid.UUID], Awaitable[ActionResult]]


@dataclass
class DeadLetter:
    user_id: uuid.UUID
    error: str
    failed_at: datetime


class ProfileResyncQueue:
    def __init__(self, resync: ResyncFn, capacity: int = DEAD_LETTER_CAPACITY):
        self._resync = resync
        self._tasks: Set[asyncio.Task] = set()
        self.dead_letters: Deque[DeadLetter] = deque(maxlen=capacity)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, user_id: uuid.UUID) -> asyncio.Task:
        task = asyncio.create_task(self._run(user_id), name=f"profile-resync:{user_id}")
        # the loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, user_id: uuid.UUID) -> None:
        try:
            result = await self._resync(user_id)
        except Exception as exc:
            self._dead_letter(user_id, repr(exc), exc_info=True)
            return
        if not result.success:
            self._dead_letter(user_id, result.error or "unknown error")

    def _dead_letter(self, user_id: uuid.UUID, error: str, exc_info: bool = False) -> None:
        self.dead_letters.append(DeadLetter(user_id=user_id, error=error, failed_at=utcnow()))
        dead_letter_logger.error("Profile resync failed for user %s: %s", user_id, error, exc_info=exc_info)

    async def drain(self) -> None:
        """Wait for every submitted resync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
