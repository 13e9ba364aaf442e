"""
Supervised task set for workflow runs that outlive their request.
"""

import asyncio
from typing import Awaitable, Set

from shared.logging import get_logger


class WorkflowSupervisor:
    """Owns detached tasks, logs their failures and cancels them on shutdown."""

    def __init__(self, metrics=None):
        self.metrics = metrics
        self.logger = get_logger("tokenization.supervisor")
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        self.logger.debug("Workflow task started", task=name, active=len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.info("Workflow task cancelled", task=task.get_name())
            return

        exc = task.exception()
        if exc is not None:
            self.logger.error("Workflow task crashed", task=task.get_name(), error=str(exc), exc_info=exc)
            if self.metrics is not None:
                self.metrics.record_error("workflow_crash")

    async def join(self) -> None:
        """Wait until every task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        self.logger.info("Cancelling workflow tasks", active=len(self._tasks))
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
