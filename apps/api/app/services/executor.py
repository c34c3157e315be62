"""Background task execution for processing runs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
import logging

logger = logging.getLogger(__name__)


class TaskExecutor(ABC):
    """Fire-and-forget task sink. Callers never wait on the submitted work."""

    @abstractmethod
    def submit(self, name: str, task: Callable[[], None]) -> None:
        """Schedule ``task``; ``name`` is only used for logging."""

    def shutdown(self, *, wait: bool = True) -> None:
        """Release worker resources."""


class ThreadPoolTaskExecutor(TaskExecutor):
    def __init__(self, max_workers: int, *, thread_name_prefix: str = "assetpipe") -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)

    def submit(self, name: str, task: Callable[[], None]) -> None:
        future = self._pool.submit(task)
        future.add_done_callback(lambda done: self._log_outcome(name, done))

    @staticmethod
    def _log_outcome(name: str, future: Future) -> None:
        if future.cancelled():
            logger.warning("executor.task_cancelled task=%s", name)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("executor.task_crashed task=%s error=%s", name, type(exc).__name__, exc_info=exc)

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=not wait)


__all__ = ["TaskExecutor", "ThreadPoolTaskExecutor"]
