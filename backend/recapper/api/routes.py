"""
HTTP API routes for recap generation.

Provides endpoints for:
- Starting a recap run on an inbox video
- Querying job status and downloading the clip
- Listing inbox files
"""

import asyncio
import logging
from pathlib import Path

import pydantic
from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Response

from recapper.config import get_settings
from recapper.models.schemas import RecapJob, RecapRequest, RecapSettings, VideoAsset
from recapper.services.error_classifier import CANCELLED_MESSAGE
from recapper.services.errors import ValidationError
from recapper.services.job_manager import get_job_manager
from recapper.services.pipeline import PipelineOrchestrator
from recapper.utils.media_utils import is_video_file, validate_video_file

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["recaps"])

_orchestrator: PipelineOrchestrator | None = None


def get_orchestrator() -> PipelineOrchestrator:
    """Get the shared orchestrator (one engine for all runs)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PipelineOrchestrator.from_settings(get_settings())
    return _orchestrator


async def shutdown_orchestrator() -> None:
    """Close the shared orchestrator if it was created."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None


async def run_recap(
    job_id: str,
    asset: VideoAsset,
    recap_settings: RecapSettings,
    api_key: str,
) -> None:
    """
    Background task running one recap.

    Args:
        job_id: Job identifier for stage updates
        asset: Source video
        recap_settings: Recap settings
        api_key: Credential for script generation
    """
    job_manager = get_job_manager()
    orchestrator = get_orchestrator()

    async def on_stage(stage) -> None:
        """Forward working stages; the terminal one is sent by finish_job."""
        if not stage.is_terminal:
            await job_manager.update_stage(job_id, stage)

    try:
        result = await orchestrator.run(asset, recap_settings, api_key, on_stage=on_stage)
    except asyncio.CancelledError:
        await job_manager.fail_job(job_id, CANCELLED_MESSAGE)
        raise
    except ValidationError as e:
        await job_manager.fail_job(job_id, e.message)
        return
    except Exception as e:
        logger.exception(f"Recap error for job {job_id}")
        await job_manager.fail_job(job_id, str(e))
        return

    await job_manager.finish_job(job_id, result.stage, result.artifact)


@router.post("/recaps", response_model=RecapJob)
async def start_recap(
    request: RecapRequest,
    background_tasks: BackgroundTasks,
    x_api_key: str | None = Header(default=None),
) -> RecapJob:
    """
    Start a recap run.

    Validates inputs synchronously, then runs the pipeline in the
    background. Use WebSocket /ws/{job_id} for live stage updates.

    Args:
        request: RecapRequest with inbox filename and settings
        x_api_key: Gemini API key (X-Api-Key header)

    Returns:
        RecapJob with job_id for tracking

    Raises:
        404: Video file not found in inbox
        400: Invalid file, settings, credential or description
    """
    settings = get_settings()
    video_path = settings.inbox_dir / Path(request.video_filename).name

    if not video_path.is_file():
        raise HTTPException(
            status_code=404,
            detail=f"Video file not found: {request.video_filename}",
        )

    try:
        validate_video_file(video_path, settings.max_video_size_bytes)
        recap_settings = RecapSettings(
            target_duration_seconds=request.target_duration_seconds,
            sample_interval_seconds=request.sample_interval_seconds,
            capture_window_seconds=request.capture_window_seconds,
            description=request.description,
        )
        asset = VideoAsset.from_path(video_path)
        api_key = get_orchestrator().validate(asset, recap_settings, x_api_key)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except pydantic.ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False)[0]["msg"])

    job_manager = get_job_manager()
    job = job_manager.create_job(asset.name)

    background_tasks.add_task(run_recap, job.job_id, asset, recap_settings, api_key)

    logger.info(f"Started recap job {job.job_id}: {asset.name}")
    return job


@router.get("/jobs/{job_id}", response_model=RecapJob)
async def get_job_status(job_id: str) -> RecapJob:
    """
    Get recap job status.

    Raises:
        404: Job not found
    """
    job = get_job_manager().get_job(job_id)

    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")

    return job


@router.get("/jobs", response_model=list[RecapJob])
async def list_jobs() -> list[RecapJob]:
    """List all recap jobs."""
    return get_job_manager().list_jobs()


@router.get("/jobs/{job_id}/clip")
async def download_clip(job_id: str) -> Response:
    """
    Download the recap clip of a completed job.

    Raises:
        404: Job not found or not completed
    """
    artifact = get_job_manager().get_artifact(job_id)

    if artifact is None:
        raise HTTPException(status_code=404, detail=f"No clip for job: {job_id}")

    return Response(
        content=artifact.clip.data,
        media_type=artifact.clip.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.clip.file_name}"'},
    )


@router.get("/inbox", response_model=list[str])
async def list_inbox_files() -> list[str]:
    """
    List video files in inbox directory.

    Returns:
        Sorted list of supported video filenames
    """
    settings = get_settings()

    if not settings.inbox_dir.exists():
        return []

    return sorted(
        f.name
        for f in settings.inbox_dir.iterdir()
        if f.is_file() and is_video_file(f)
    )
