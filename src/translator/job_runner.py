"""Background task registry: at most one running task per job id."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List
from uuid import UUID

logger = logging.getLogger(__name__)


class JobAlreadyRunningError(RuntimeError):
    """Raised when a second task is launched for a job that is still running."""

    def __init__(self, job_id: UUID):
        super().__init__(f"Job {job_id} already has a running task")
        self.job_id = job_id


class JobRunner:
    """
    Launches detached asyncio tasks keyed by job id.

    Tasks outlive the request that launched them; the registry keeps a
    strong reference to each one until it finishes.
    """

    def __init__(self):
        self._tasks: Dict[UUID, asyncio.Task] = {}

    def launch(self, job_id: UUID, job_factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """
        Start the task for a job without waiting for it.

        Args:
            job_id: Job the task mutates
            job_factory: Zero-argument callable returning the coroutine to run

        Returns:
            The created task

        Raises:
            JobAlreadyRunningError: If the job already has a live task
        """
        if self.is_running(job_id):
            raise JobAlreadyRunningError(job_id)

        task = asyncio.create_task(job_factory(), name=f"translation-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda finished: self._on_done(job_id, finished))
        logger.debug(f"Launched background task for job {job_id}")
        return task

    def _on_done(self, job_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

        if task.cancelled():
            logger.warning(f"Background task for job {job_id} was cancelled")
        elif task.exception() is not None:
            logger.error(
                f"Background task for job {job_id} crashed: {task.exception()}"
            )

    def is_running(self, job_id: UUID) -> bool:
        """Whether the job has a task that has not finished yet."""
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def running_job_ids(self) -> List[UUID]:
        """Ids of jobs with live tasks."""
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def wait(self, job_id: UUID) -> None:
        """Wait for a job's task to finish, if there is one."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all running tasks and wait for them to unwind."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        if not tasks:
            return

        logger.info(f"Cancelling {len(tasks)} running translation task(s)")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
