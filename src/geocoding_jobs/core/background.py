"""Background task runner abstraction.

Provides a protocol for submitting and tracking background tasks, with an
in-process asyncio implementation. Tasks are keyed (typically by geocoding
record ID) so that at most one run per record is in flight at a time.
"""

import asyncio
import enum
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class JobStatus(enum.StrEnum):
    """Status of a background task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DuplicateTaskError(RuntimeError):
    """Raised when a task is submitted for a key that is still in flight."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"A task for {key!r} is already in flight")


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, key: str, coro: Coroutine[Any, Any, Any]) -> str:
        """Submit an async task for background execution.

        Args:
            key: Identifier of the unit of work; one in-flight task per key.
            coro: The coroutine to execute.

        Returns:
            The key, for tracking.
        """
        ...

    def get_status(self, key: str) -> JobStatus:
        """Get the current status of a background task."""
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same event loop as the caller using asyncio.create_task(),
    so submission returns immediately while the work continues.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, JobStatus] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def is_running(self, key: str) -> bool:
        """Whether a task for ``key`` has been submitted and has not finished."""
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def submit_task(self, key: str, coro: Coroutine[Any, Any, Any]) -> str:
        """Submit an async task for background execution.

        Args:
            key: Identifier of the unit of work.
            coro: The coroutine to execute.

        Returns:
            The key, for tracking.

        Raises:
            DuplicateTaskError: If a task for the same key is still running.
        """
        if self.is_running(key):
            coro.close()
            raise DuplicateTaskError(key)

        self._statuses[key] = JobStatus.PENDING

        async def _run() -> None:
            self._statuses[key] = JobStatus.RUNNING
            try:
                await coro
                self._statuses[key] = JobStatus.COMPLETED
            except Exception:
                self._statuses[key] = JobStatus.FAILED
                logger.exception(f"Background task {key} failed")
                raise

        self._tasks[key] = asyncio.create_task(_run())
        return key

    def get_status(self, key: str) -> JobStatus:
        """Get the current status of a background task.

        Raises:
            KeyError: If the key is not found.
        """
        return self._statuses[key]

    async def wait(self, key: str) -> None:
        """Wait for the task registered under ``key`` to finish, if any."""
        task = self._tasks.get(key)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)


# Singleton instance for the application
task_runner = InProcessTaskRunner()
