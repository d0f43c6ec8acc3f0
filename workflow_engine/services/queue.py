"""In-process execution queue - asyncio workers consuming enqueued jobs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable

from ..core.config import settings
from ..engine.types import QueueJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[QueueJob], Awaitable[Any]]


class ExecutionQueue:
    """
    Topic-routed job queue with a fixed pool of worker tasks.

    Jobs carrying an `executionId` can be canceled while still queued; a
    canceled job is dropped when a worker picks it up. Handler failures are
    logged and never stop the worker.
    """

    def __init__(self, workers: int | None = None) -> None:
        self._workers = workers or settings.queue_workers
        self._queue: asyncio.Queue[QueueJob] | None = None
        self._handlers: dict[str, JobHandler] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._pending: dict[str, QueueJob] = {}
        self._canceled: set[str] = set()
        self._active: set[str] = set()

    @property
    def queue(self) -> asyncio.Queue[QueueJob]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def register(self, topic: str, handler: JobHandler) -> None:
        """Register the consumer of a topic. Replaces any previous consumer."""
        self._handlers[topic] = handler

    async def enqueue(self, topic: str, payload: dict[str, Any]) -> QueueJob:
        job = QueueJob(id=str(uuid.uuid4()), topic=topic, payload=payload)
        execution_id = payload.get("executionId")
        if execution_id:
            self._pending[execution_id] = job
        await self.queue.put(job)
        logger.debug("Enqueued job %s on %s", job.id, topic)
        return job

    def cancel(self, execution_id: str) -> bool:
        """
        Mark an execution as canceled.

        Returns True if its job was still waiting in the queue. A running
        job keeps running and sees the cancel through cancellation_requested().
        """
        removed = self._pending.pop(execution_id, None) is not None
        if removed:
            logger.info("Removed queued job for execution %s", execution_id)
        elif execution_id in self._active:
            self._canceled.add(execution_id)
        return removed

    def cancellation_requested(self, execution_id: str) -> bool:
        return execution_id in self._canceled

    def pending_count(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        if self._tasks:
            return
        for index in range(self._workers):
            self._tasks.append(asyncio.create_task(self._worker(index)))
        logger.info("Execution queue started with %d workers", self._workers)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Execution queue stopped")

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        await self.queue.join()

    async def process_next(self) -> QueueJob:
        """Dequeue and process a single job."""
        job = await self.queue.get()
        try:
            await self._dispatch(job)
        finally:
            self.queue.task_done()
        return job

    async def _worker(self, index: int) -> None:
        logger.debug("Queue worker %d started", index)
        while True:
            await self.process_next()

    async def _dispatch(self, job: QueueJob) -> None:
        execution_id = job.payload.get("executionId")
        if execution_id:
            if self._pending.get(execution_id) is not job:
                logger.info("Skipping canceled job %s (execution %s)", job.id, execution_id)
                return
            del self._pending[execution_id]

        handler = self._handlers.get(job.topic)
        if handler is None:
            logger.warning("No consumer registered for topic %s, dropping job %s", job.topic, job.id)
            return

        if execution_id:
            self._active.add(execution_id)
        try:
            await handler(job)
        except Exception as e:
            logger.error("Job %s on %s failed: %s", job.id, job.topic, e)
        finally:
            if execution_id:
                self._active.discard(execution_id)
                self._canceled.discard(execution_id)
