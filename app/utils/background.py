"""
Background Writer

Fire-and-forget handoff for cache/database writes that must not block a
response. Tasks are tracked until completion, concurrency is bounded by a
semaphore, the number of pending writes is capped (extra writes are
dropped and counted), and failures are logged and counted so they show
up in /health/detailed. Nothing is retried: the next read re-triggers the
fetch-and-persist cycle.
"""

import asyncio
from typing import Awaitable, Coroutine, Dict, Optional, Set

from app.config import BACKGROUND_MAX_CONCURRENCY, BACKGROUND_MAX_PENDING
from app.utils.logger import create_logger

logger = create_logger(__name__)


class BackgroundWriter:
    """Tracks detached write tasks and records their outcome."""

    def __init__(
        self,
        max_concurrency: int = BACKGROUND_MAX_CONCURRENCY,
        max_pending: int = BACKGROUND_MAX_PENDING,
    ):
        """
        Initialize background writer.

        Args:
            max_concurrency: Maximum number of writes running at once
            max_pending: Maximum number of tracked writes; submissions past
                it are dropped
        """
        self.max_concurrency = max_concurrency
        self.max_pending = max_pending
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()
        self.submitted = 0
        self.completed = 0
        self.failed = 0
        self.rejected = 0
        self.last_error: Optional[str] = None

    def submit(self, coro: Coroutine, description: str) -> Optional[asyncio.Task]:
        """
        Schedule a write without awaiting it.

        Args:
            coro: Coroutine performing the write
            description: Short label used in logs (e.g. "persist reference AAPL")

        Returns:
            asyncio.Task: The tracked task, or None when the write was dropped
        """
        if len(self._tasks) >= self.max_pending:
            # Never awaited, so close it to avoid a "coroutine was never awaited" warning
            coro.close()
            self.rejected += 1
            logger.warning(f"Background write dropped ({self.pending} pending): {description}")
            return None

        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)

        task = asyncio.create_task(self._run(coro, description))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.submitted += 1
        return task

    async def _run(self, coro: Awaitable, description: str) -> None:
        async with self._semaphore:
            try:
                await coro
                self.completed += 1
                logger.debug(f"Background write done: {description}")
            except Exception as e:
                self.failed += 1
                self.last_error = f"{description}: {e}"
                logger.error(f"Background write failed: {description}: {e}", exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every tracked task, including ones scheduled while draining."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stats(self) -> Dict:
        return {
            "pending": self.pending,
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "rejected": self.rejected,
            "last_error": self.last_error,
        }
