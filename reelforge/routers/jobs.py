"""
Job endpoints: create and poll jobs, re-render clips, store caption overrides.

Repository and render errors are mapped to HTTP status codes here; the
pipeline itself never raises into a request.
"""

import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from reelforge.config import SUBTITLE_OVERRIDE_TTL_SECONDS
from reelforge.core.cache import TTLCache, store_subtitle_override
from reelforge.core.errors import RenderError, SourceVideoNotFoundError
from reelforge.core.job_runner import JobRunner
from reelforge.core.repositories import (
    ClipRepository,
    ConflictError,
    JobRecord,
    JobRepository,
    JobStatus,
    NotFoundError,
    RepositoryError,
)
from reelforge.core.reprocessing import (
    BundleNotFoundError,
    ClipNotFoundError,
    ClipReprocessor,
    RerenderTimeoutError,
)
from reelforge.core.subtitles import resolve_preferences
from reelforge.dependencies import (
    get_cache,
    get_clip_repository,
    get_job_repository,
    get_job_runner,
    get_reprocessor,
)
from reelforge.schemas import (
    ClipResponse,
    CreateJobRequest,
    JobResponse,
    RerenderRequest,
    SubtitleOverrideRequest,
    SubtitleOverrideResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


async def _load_job(jobs: JobRepository, job_id: str) -> JobRecord:
    try:
        return await asyncio.to_thread(jobs.get, job_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except RepositoryError as e:
        logger.error(f"Failed to load job {job_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job store unavailable")


@router.post("", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(
    request: CreateJobRequest,
    jobs: JobRepository = Depends(get_job_repository),
    runner: JobRunner = Depends(get_job_runner),
) -> JobResponse:
    """Create a job and start processing it in the background."""
    job = request.to_job(uuid.uuid4().hex)
    try:
        await asyncio.to_thread(jobs.create, job)
    except ConflictError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job already exists")
    except RepositoryError as e:
        logger.error(f"Failed to create job: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job store unavailable")

    runner.start_job(job)
    logger.info(f"Accepted job {job.id} ({job.clip_count} clips, {job.aspect_ratio})")
    return JobResponse.from_record(job)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    jobs: JobRepository = Depends(get_job_repository),
    clips: ClipRepository = Depends(get_clip_repository),
) -> JobResponse:
    """Get job state; clips are listed only for completed jobs."""
    job = await _load_job(jobs, job_id)
    if job.status != JobStatus.COMPLETED:
        return JobResponse.from_record(job)

    try:
        records = await asyncio.to_thread(clips.list_by_job, job_id)
    except RepositoryError as e:
        logger.error(f"Failed to list clips for job {job_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Clip store unavailable")
    return JobResponse.from_record(job, records)


@router.post("/{job_id}/clips/{clip_id}/rerender", response_model=ClipResponse)
async def rerender_clip(
    job_id: str,
    clip_id: str,
    request: Optional[RerenderRequest] = None,
    reprocessor: ClipReprocessor = Depends(get_reprocessor),
) -> ClipResponse:
    """Re-render one clip of a completed job with new caption preferences."""
    overrides = None
    if request is not None and request.subtitle_preferences is not None:
        overrides = request.subtitle_preferences.model_dump(exclude_unset=True)

    try:
        record = await reprocessor.rerender(job_id, clip_id, overrides)
    except (BundleNotFoundError, ClipNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SourceVideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RerenderTimeoutError as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    except RenderError as e:
        logger.error(f"Re-render of clip {clip_id} failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Re-render failed")
    except RepositoryError as e:
        logger.error(f"Failed to save re-rendered clip {clip_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Clip store unavailable")

    return ClipResponse.from_record(record)


async def _store_override(
    jobs: JobRepository,
    cache: TTLCache,
    job_id: str,
    request: SubtitleOverrideRequest,
    clip_id: Optional[str] = None,
) -> SubtitleOverrideResponse:
    job = await _load_job(jobs, job_id)
    store_subtitle_override(
        cache,
        job_id,
        request.preferences.model_dump(exclude_unset=True),
        clip_id,
    )
    logger.info(f"Stored subtitle override for job {job_id} (clip {clip_id or 'all'})")
    return SubtitleOverrideResponse(
        job_id=job_id,
        clip_id=clip_id,
        preferences=resolve_preferences(cache, job_id, clip_id, job.subtitle_preferences),
        expires_in=SUBTITLE_OVERRIDE_TTL_SECONDS,
    )


@router.put("/{job_id}/subtitles", response_model=SubtitleOverrideResponse)
async def set_job_subtitles(
    job_id: str,
    request: SubtitleOverrideRequest,
    jobs: JobRepository = Depends(get_job_repository),
    cache: TTLCache = Depends(get_cache),
) -> SubtitleOverrideResponse:
    """Store caption preferences for every later render of this job."""
    return await _store_override(jobs, cache, job_id, request)


@router.put("/{job_id}/clips/{clip_id}/subtitles", response_model=SubtitleOverrideResponse)
async def set_clip_subtitles(
    job_id: str,
    clip_id: str,
    request: SubtitleOverrideRequest,
    jobs: JobRepository = Depends(get_job_repository),
    cache: TTLCache = Depends(get_cache),
) -> SubtitleOverrideResponse:
    """Store caption preferences for later renders of one clip."""
    return await _store_override(jobs, cache, job_id, request, clip_id)
