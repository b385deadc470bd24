"""
Bounded worker pool for generation runs.

Submitting a generation creates its ``pending`` row, enqueues the run and
returns the tracking id immediately. A fixed number of workers drain the
queue, so at most ``max_concurrency`` pipelines run at once and at most
``max_queue_size`` wait. A submission that finds the queue full is recorded
as ``failed`` and rejected with ``QueueFullError``.

Example:
    >>> async with GenerationWorkerPool(pipeline, store) as pool:
    ...     generation_id = await pool.submit(shop_id, domain, token, url)
    ...     await pool.join()
"""

import asyncio
from typing import Optional

from site_cloner.models.schemas import GenerationContext, GenerationStatus
from site_cloner.pipeline.orchestrator import UNKNOWN_ERROR_MESSAGE, GenerationPipeline
from site_cloner.services.generation_store import GenerationStore
from site_cloner.utils.logger import get_logger
from site_cloner.utils.retry import QueueFullError

logger = get_logger(__name__)

POOL_STOPPED_MESSAGE = "Generation cancelled: worker pool stopped"


class GenerationWorkerPool:
    """Fixed-size pool of workers consuming a bounded generation queue."""

    def __init__(
        self,
        pipeline: GenerationPipeline,
        store: GenerationStore,
        max_concurrency: Optional[int] = None,
        max_queue_size: Optional[int] = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.max_concurrency = max_concurrency or pipeline.settings.max_concurrent_generations
        self.max_queue_size = max_queue_size or pipeline.settings.max_queued_generations

        self._queue: Optional[asyncio.Queue] = None
        self._workers: list[asyncio.Task] = []

    async def __aenter__(self) -> "GenerationWorkerPool":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    @property
    def queued(self) -> int:
        return self._queue.qsize() if self._queue else 0

    def start(self) -> None:
        """Spawn the workers. Must be called from a running event loop."""
        if self.is_running:
            return

        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"generation-worker-{i}")
            for i in range(self.max_concurrency)
        ]
        logger.info(
            "Worker pool started",
            workers=self.max_concurrency,
            max_queue_size=self.max_queue_size,
        )

    async def submit(
        self,
        shop_id: str,
        shop_domain: str,
        access_token: str,
        source_url: str,
    ) -> str:
        """
        Create a ``pending`` generation and enqueue its run.

        Returns:
            The generation id to poll

        Raises:
            RuntimeError: If the pool has not been started
            QueueFullError: If the queue is at capacity
        """
        if not self.is_running:
            raise RuntimeError("Worker pool is not running. Call start() first.")

        generation = await self.store.create_generation(shop_id, source_url)
        context = GenerationContext(
            generation_id=generation.id,
            shop_id=shop_id,
            shop_domain=shop_domain,
            access_token=access_token,
            source_url=source_url,
        )

        try:
            self._queue.put_nowait(context)
        except asyncio.QueueFull:
            error = QueueFullError()
            await self._mark_failed(generation.id, error.message)
            logger.warning("Generation rejected, queue full", generation_id=generation.id)
            raise error from None

        logger.info("Generation queued", generation_id=generation.id, queued=self.queued)
        return generation.id

    async def _mark_failed(self, generation_id: str, message: str) -> None:
        try:
            await self.store.update_generation(
                generation_id,
                status=GenerationStatus.FAILED.value,
                progress=0,
                error_message=message,
            )
        except Exception as e:
            logger.error(
                "Could not record generation failure",
                generation_id=generation_id,
                error=str(e),
            )

    async def _worker(self, worker_id: int) -> None:
        while True:
            context = await self._queue.get()
            try:
                result = await self.pipeline.run(context)
                logger.debug(
                    "Worker finished generation",
                    worker=worker_id,
                    generation_id=context.generation_id,
                    success=result.success,
                )
            except asyncio.CancelledError:
                await self._mark_failed(context.generation_id, POOL_STOPPED_MESSAGE)
                raise
            except Exception as e:
                message = str(e) or UNKNOWN_ERROR_MESSAGE
                logger.error(
                    "Worker failed generation",
                    worker=worker_id,
                    generation_id=context.generation_id,
                    error=message,
                )
                await self._mark_failed(context.generation_id, message)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued generation has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """
        Cancel the workers and fail whatever has not finished.

        In-flight runs and queued runs that never started are both recorded
        as ``failed``, so no generation is left in a non-terminal state.
        """
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        drained = 0
        while self._queue is not None and not self._queue.empty():
            context = self._queue.get_nowait()
            await self._mark_failed(context.generation_id, POOL_STOPPED_MESSAGE)
            self._queue.task_done()
            drained += 1

        logger.info("Worker pool stopped", drained=drained)
