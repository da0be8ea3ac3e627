"""
Per-project phase queue.

Automatic continuations (analysis after upload, setup after analysis, build
after setup) are posted here as messages. Each project id gets one
sequential worker, so queued phases for the same project never overlap
while different projects proceed concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from ..core.logging import bound_context, get_logger
from ..core.types import PhaseName, ProjectId

logger = get_logger(__name__)

PhaseHandler = Callable[[ProjectId, PhaseName], Awaitable[None]]


class PhaseQueue:
    """Sequential per-project task queue."""

    def __init__(self, handler: PhaseHandler) -> None:
        """Initialize the queue.

        Args:
            handler: Coroutine run for each queued ``(project_id, phase)``
        """
        self._handler = handler
        self._queues: dict[ProjectId, asyncio.Queue[PhaseName]] = {}
        self._workers: dict[ProjectId, asyncio.Task[None]] = {}
        self._closed = False

    def enqueue(self, project_id: ProjectId, phase: PhaseName) -> bool:
        """Post a phase for a project. Returns False once the queue is shut down."""
        if self._closed:
            logger.warning("Phase queue closed, dropping phase", project_id=project_id, phase=phase.value)
            return False

        queue = self._queues.get(project_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[project_id] = queue
            self._workers[project_id] = asyncio.create_task(
                self._worker(project_id, queue), name=f"phase-queue-{project_id}"
            )
        queue.put_nowait(phase)
        logger.debug("Phase queued", project_id=project_id, phase=phase.value)
        return True

    async def _worker(self, project_id: ProjectId, queue: asyncio.Queue[PhaseName]) -> None:
        while True:
            phase = await queue.get()
            try:
                with bound_context(project_id=project_id, phase=phase.value):
                    await self._handler(project_id, phase)
            except Exception:
                logger.exception("Queued phase crashed", project_id=project_id, phase=phase.value)
            finally:
                queue.task_done()

            if queue.empty():
                # Nothing can be enqueued between this check and the removal
                self._queues.pop(project_id, None)
                self._workers.pop(project_id, None)
                return

    def is_busy(self, project_id: ProjectId) -> bool:
        return project_id in self._queues

    async def join(self, project_id: ProjectId) -> None:
        """Wait until the project's queue has drained, including follow-up phases."""
        while (queue := self._queues.get(project_id)) is not None:
            await queue.join()
            await asyncio.sleep(0)

    async def join_all(self) -> None:
        while self._queues:
            await asyncio.gather(*(self.join(pid) for pid in list(self._queues)))

    async def shutdown(self) -> None:
        """Stop accepting work and cancel running workers."""
        self._closed = True
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._queues.clear()
        self._workers.clear()
        logger.debug("Phase queue shut down", cancelled=len(workers))
