"""
Access Tracker - Best-effort background recording of memory recalls.

Context assembly emits one message per recalled memory; a single worker
task drains the queue and calls LongTermMemory.touch(). The request path
never waits on a touch and never sees its errors.
"""
import asyncio
from typing import Optional

from agent_context.core.config import settings
from agent_context.core.logging import get_logger
from agent_context.services.memory.long_term import IdLike, LongTermMemory

logger = get_logger(__name__)


class AccessTracker:
    """
    Queue + worker that bumps access statistics off the request path.
    """

    def __init__(
        self,
        long_term: LongTermMemory,
        max_queue_size: Optional[int] = None
    ):
        """
        Initialize access tracker.

        Args:
            long_term: Store whose touch() records the access
            max_queue_size: Pending touches kept before new ones are dropped
        """
        self.long_term = long_term
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=max_queue_size or settings.ACCESS_TRACKER_QUEUE_SIZE
        )
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        """Number of touches waiting to be processed."""
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker task (no-op if already running)."""
        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Access tracker started")

    def record(self, memory_id: IdLike) -> bool:
        """
        Queue an access for memory_id without blocking.

        Returns:
            False if the queue is full and the access was dropped
        """
        self.start()

        try:
            self._queue.put_nowait(memory_id)
        except asyncio.QueueFull:
            logger.warning("Access tracker queue full, dropping touch", memory_id=str(memory_id))
            return False

        return True

    async def flush(self) -> None:
        """Wait until every queued access has been processed."""
        # An empty queue can still have a touch in flight; join() covers both
        if self._queue.empty() and not self.running:
            return
        self.start()
        await self._queue.join()

    async def stop(self) -> None:
        """Process pending accesses, then stop the worker."""
        await self.flush()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
            logger.debug("Access tracker stopped")

    async def _run(self) -> None:
        while True:
            memory_id = await self._queue.get()
            try:
                touched = await self.long_term.touch(memory_id)
                if not touched:
                    logger.debug("Touched memory no longer exists", memory_id=str(memory_id))
            except Exception as e:
                # Usage telemetry only: log and keep draining
                logger.warning(
                    "Failed to record memory access",
                    memory_id=str(memory_id),
                    error=str(e)
                )
            finally:
                self._queue.task_done()
