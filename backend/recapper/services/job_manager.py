"""
Job manager for recap runs started through the API.

Handles job lifecycle, keeps finished artifacts and broadcasts stage
updates to WebSocket subscribers.
"""

import asyncio
import logging
import uuid
from datetime import datetime

from recapper.config import get_settings
from recapper.models.schemas import (
    ProcessingStage,
    RecapArtifact,
    RecapJob,
    StageKind,
)
from recapper.services.pipeline import ProgressManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_FINISHED_JOBS = 20


class JobManager:
    """
    Manager for recap jobs with WebSocket broadcasting.

    Stores jobs in-memory. The manager, not the pipeline, owns the
    artifacts of completed runs. Only the newest max_finished_jobs
    finished jobs are kept; older ones are dropped with their clips.

    Example:
        manager = JobManager()
        job = manager.create_job("movie.mp4")
        queue = manager.subscribe(job.job_id)
        await manager.update_stage(job.job_id, stage)
    """

    def __init__(self, max_finished_jobs: int = DEFAULT_MAX_FINISHED_JOBS):
        self.max_finished_jobs = max_finished_jobs
        self._jobs: dict[str, RecapJob] = {}
        self._artifacts: dict[str, RecapArtifact] = {}
        self._subscribers: dict[str, list[asyncio.Queue]] = {}
        self.progress_manager = ProgressManager()

    def create_job(self, video_name: str) -> RecapJob:
        """
        Create a new recap job.

        Args:
            video_name: Name of the source video

        Returns:
            Created RecapJob with unique ID
        """
        job_id = str(uuid.uuid4())[:8]

        job = RecapJob(job_id=job_id, video_name=video_name, created_at=datetime.now())

        self._jobs[job_id] = job
        self._subscribers[job_id] = []

        logger.info(f"Created job {job_id} for {video_name}")
        return job

    def get_job(self, job_id: str) -> RecapJob | None:
        """Get job by ID."""
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[RecapJob]:
        """List all jobs."""
        return list(self._jobs.values())

    def get_artifact(self, job_id: str) -> RecapArtifact | None:
        """Get the artifact of a completed job."""
        return self._artifacts.get(job_id)

    async def update_stage(self, job_id: str, stage: ProcessingStage) -> None:
        """
        Record a working stage and broadcast it to subscribers.

        Terminal stages go through finish_job() so each job sends exactly
        one terminal message.

        Args:
            job_id: Job identifier
            stage: New stage of the job's run
        """
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for stage update")
            return

        self._apply_stage(job, stage)
        await self._broadcast(job_id, self._message(job))

    async def finish_job(
        self,
        job_id: str,
        stage: ProcessingStage,
        artifact: RecapArtifact | None = None,
    ) -> None:
        """
        Record the terminal stage of a job and send its final message.

        Args:
            job_id: Job identifier
            stage: Terminal stage (completed or error)
            artifact: Clip and script of a completed run
        """
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for completion")
            return

        self._apply_stage(job, stage)
        job.completed_at = datetime.now()
        job.finished = True

        if artifact is not None:
            self._artifacts[job_id] = artifact
            job.script = artifact.script
            job.clip_size_bytes = artifact.clip.size_bytes
            logger.info(f"Job {job_id} completed: {job.video_name}")
        else:
            logger.error(f"Job {job_id} failed: {stage.message}")

        await self._broadcast(job_id, self._message(job, final=True))

        # Final message sent: nobody waits on this job's queues any more
        self._subscribers.pop(job_id, None)
        self._evict_finished_jobs()

    async def fail_job(self, job_id: str, error: str) -> None:
        """
        Mark a job as failed outside the pipeline's own error stage.

        Args:
            job_id: Job identifier
            error: Error message
        """
        await self.finish_job(
            job_id,
            ProcessingStage(kind=StageKind.ERROR, progress_percent=0, message=error),
        )

    def subscribe(self, job_id: str) -> asyncio.Queue:
        """
        Subscribe to job updates.

        Returns:
            Queue that will receive job messages
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, []).append(queue)
        logger.debug(f"Client subscribed to job {job_id}")
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        """Unsubscribe from job updates."""
        queues = self._subscribers.get(job_id)
        if queues is None:
            return
        if queue in queues:
            queues.remove(queue)
            logger.debug(f"Client unsubscribed from job {job_id}")
        if not queues:
            del self._subscribers[job_id]

    def _apply_stage(self, job: RecapJob, stage: ProcessingStage) -> None:
        job.stage = stage
        # Error keeps the last working progress
        if stage.kind != StageKind.ERROR:
            job.overall_progress = self.progress_manager.calculate_overall_progress(
                stage.kind, stage.progress_percent
            )

    def _evict_finished_jobs(self) -> None:
        """Drop the oldest finished jobs (and their clips) beyond the cap."""
        finished = [job_id for job_id, job in self._jobs.items() if job.finished]
        for job_id in finished[: max(len(finished) - self.max_finished_jobs, 0)]:
            del self._jobs[job_id]
            self._artifacts.pop(job_id, None)
            self._subscribers.pop(job_id, None)
            logger.debug(f"Evicted finished job {job_id}")

    @staticmethod
    def _message(job: RecapJob, final: bool = False) -> dict:
        return {
            "job_id": job.job_id,
            "final": final,
            "stage": job.stage.model_dump(mode="json"),
            "overall_progress": job.overall_progress,
            "script": job.script,
            "timestamp": datetime.now().isoformat(),
        }

    async def _broadcast(self, job_id: str, message: dict) -> None:
        for queue in self._subscribers.get(job_id, []):
            try:
                await queue.put(message)
            except Exception as e:
                logger.warning(f"Failed to broadcast to subscriber: {e}")


# Global job manager instance (created on first use)
_job_manager: JobManager | None = None


def get_job_manager() -> JobManager:
    """Get global job manager instance."""
    global _job_manager
    if _job_manager is None:
        _job_manager = JobManager(max_finished_jobs=get_settings().max_finished_jobs)
    return _job_manager
