import asyncio
from typing import Awaitable, Dict, TypeVar

from core.logger import logger

T = TypeVar("T")


class TaskBusyError(Exception):
    """Another action with the same key is still running."""

    def __init__(self, key: str):
        super().__init__(f"'{key}' is already in progress. Please wait for it to finish.")
        self.key = key


class TaskManager:
    """Keeps at most one running task per action key (generate, expand...)."""

    _instance = None
    _tasks: Dict[str, asyncio.Task] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(TaskManager, cls).__new__(cls)
        return cls._instance

    def is_busy(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run(self, key: str, coro: Awaitable[T]) -> T:
        """
        Run coro as the single in-flight task for key.

        Raises:
            TaskBusyError: if a task for key has not finished yet
        """
        if self.is_busy(key):
            # Never awaited; close it so it does not warn
            close = getattr(coro, "close", None)
            if close:
                close()
            logger.warning("Rejected concurrent task", key=key)
            raise TaskBusyError(key)

        task = asyncio.ensure_future(coro)
        self._tasks[key] = task
        logger.debug("Registered task", key=key)
        task.add_done_callback(lambda t: self._cleanup_task(key, t))
        return await task

    def cancel_task(self, key: str):
        """Cancel the active task for key if it exists."""
        task = self._tasks.pop(key, None)
        if task and not task.done():
            task.cancel()
            logger.debug("Cancelled active task", key=key)

    def _cleanup_task(self, key: str, task: asyncio.Task):
        """Remove task from dict if it's still the registered one."""
        if self._tasks.get(key) is task:
            del self._tasks[key]


task_manager = TaskManager()
