import asyncio
import logging
from typing import Awaitable, Optional, Set

logger = logging.getLogger(__name__)

REPORT_TASK_NAME = "report-background-error"


class TaskRunner:
    """Runs work detached from the interaction that triggered it"""

    def __init__(self, logging_service=None):
        self.logging_service = logging_service
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine and return immediately"""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        # The event loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task {task.get_name()} failed: {error!r}")
            if self.logging_service and task.get_name() != REPORT_TASK_NAME:
                self.submit(
                    self.logging_service.log_error(error, f"Background task {task.get_name()}"),
                    name=REPORT_TASK_NAME
                )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all submitted work; used on shutdown and in tests"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
