"""
Bounded worker pool for refresh-ahead jobs.

Stale cache entries are recomputed off the request path. Jobs go through a
bounded ``asyncio.Queue`` drained by a fixed number of workers, so the
number of concurrent refreshes never exceeds ``num_workers`` and a flood of
stale reads cannot grow memory without bound.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshJob:
    key: str
    run: Callable[[], Awaitable[None]]


class RefreshWorkerPool:
    """Runs refresh jobs on a fixed set of asyncio workers"""

    def __init__(
        self,
        max_queue_size: int = 100,
        on_complete: Optional[Callable[[str], None]] = None,
        on_failure: Optional[Callable[[str, Exception], None]] = None,
    ):
        self.max_queue_size = max_queue_size
        self.on_complete = on_complete
        self.on_failure = on_failure
        self.is_running = False
        self.task_queue: Optional[asyncio.Queue] = None
        self.workers: List[asyncio.Task] = []
        self._pending: Set[str] = set()

    async def start_workers(self, num_workers: int = 2):
        """Start background worker tasks"""
        if self.is_running:
            return

        self.task_queue = asyncio.Queue(maxsize=self.max_queue_size)
        self.is_running = True

        for i in range(num_workers):
            worker = asyncio.create_task(self._worker(f"refresh-worker-{i}"))
            self.workers.append(worker)

        logger.info(f"Started {num_workers} cache refresh workers")

    async def stop_workers(self):
        """Stop all workers; queued jobs are discarded"""
        self.is_running = False

        for worker in self.workers:
            worker.cancel()

        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers.clear()
        self._pending.clear()
        self.task_queue = None

        logger.info("Stopped all cache refresh workers")

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, job: RefreshJob) -> bool:
        """
        Queue a job without blocking.

        Returns False when the pool is stopped, the key already has a job
        queued or running, or the queue is full.
        """
        if not self.is_running or self.task_queue is None:
            return False
        if job.key in self._pending:
            return False
        try:
            self.task_queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning(f"Refresh queue full, dropping refresh for {job.key}")
            return False
        self._pending.add(job.key)
        return True

    async def join(self):
        """Wait until every queued job has been processed"""
        if self.task_queue is not None:
            await self.task_queue.join()

    async def _worker(self, worker_name: str):
        """Background worker that processes refresh jobs from the queue"""
        logger.debug(f"Starting refresh worker: {worker_name}")

        while self.is_running:
            job = await self.task_queue.get()
            try:
                await job.run()
                if self.on_complete:
                    self.on_complete(job.key)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The stale entry stays servable; the failure is only counted
                logger.warning(f"Worker {worker_name} failed to refresh {job.key}: {e}")
                if self.on_failure:
                    self.on_failure(job.key, e)
            finally:
                self._pending.discard(job.key)
                self.task_queue.task_done()
