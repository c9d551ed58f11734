"""Background job runner using asyncio."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

from reelforge.core.repositories.models import JobRecord

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobRecord], Awaitable[object]]


class JobRunner:
    """
    Runs pipeline jobs as asyncio tasks, one task per job id.

    The handler owns all job state; the runner only tracks tasks.
    """

    def __init__(self, handler: JobHandler):
        self._handler = handler
        self._running_jobs: Dict[str, asyncio.Task] = {}

    def start_job(self, job: JobRecord) -> bool:
        """
        Start a job in the background.

        Returns:
            False if the job already finished or a task for it is running.
        """
        if job.is_terminal:
            logger.warning(f"Job {job.id} is already {job.status.value}")
            return False
        if self.is_job_running(job.id):
            logger.warning(f"Job {job.id} is already running")
            return False

        task = asyncio.create_task(self._run_job(job), name=f"job-{job.id}")
        self._running_jobs[job.id] = task
        return True

    async def _run_job(self, job: JobRecord) -> None:
        try:
            await self._handler(job)
        except asyncio.CancelledError:
            logger.info(f"Job {job.id} was cancelled")
        except Exception as e:
            logger.error(f"Job {job.id} handler crashed: {e}", exc_info=True)
        finally:
            self._running_jobs.pop(job.id, None)

    def is_job_running(self, job_id: str) -> bool:
        return job_id in self._running_jobs

    async def shutdown(self) -> None:
        """Cancel every running job and wait for the tasks to settle."""
        tasks = list(self._running_jobs.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running jobs")
