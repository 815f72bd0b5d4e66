import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

AnalysisHandler = Callable[[int], Awaitable[object]]


class AnalysisQueue:
    """Single-consumer queue for deferred commit classification.

    ``enqueue`` never blocks the caller. The consumer waits ``delay`` seconds
    before each item to stay under provider rate limits.
    """

    def __init__(self, handler: AnalysisHandler | None = None, delay: float = 2.0) -> None:
        self.handler = handler
        self.delay = delay
        self._queue: asyncio.Queue[int] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    def bind(self, handler: AnalysisHandler) -> None:
        self.handler = handler

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, commit_id: int) -> None:
        self._queue.put_nowait(commit_id)

    def start(self) -> None:
        if self.running:
            return
        if self.handler is None:
            raise RuntimeError("AnalysisQueue has no handler bound")
        self._worker = asyncio.create_task(self._run(), name="commit-analysis")
        logger.info("Analysis worker started", delay=self.delay)

    async def _run(self) -> None:
        while True:
            commit_id = await self._queue.get()
            try:
                if self.delay:
                    await asyncio.sleep(self.delay)
                await self.handler(commit_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Commit analysis failed", commit_id=commit_id)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued commit has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Analysis worker stopped", dropped=self.pending)
