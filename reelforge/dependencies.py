"""
Service wiring for the API.

Each provider builds its service once and reuses it. Routers receive them
through FastAPI's Depends, so tests can swap any of them with
app.dependency_overrides.
"""

import asyncio
import logging
from typing import Optional

from reelforge.config import WORK_DIR
from reelforge.core.cache import TTLCache, get_pipeline_cache
from reelforge.core.gemini import GeminiClient
from reelforge.core.job_runner import JobRunner
from reelforge.core.ranking import HighlightRanker
from reelforge.core.repositories import ClipRepository, JobRecord, JobRepository, JobStage, JobStatus
from reelforge.core.reprocessing import ClipReprocessor
from reelforge.core.speech import WhisperClient
from reelforge.core.storage import R2Storage
from reelforge.core.texts import ClipTextWriter
from reelforge.core.transcription import TranscriptionChunker
from reelforge.core.workflow.clip_processor import RenderBatchController
from reelforge.core.workflow.processor import PipelineOrchestrator

logger = logging.getLogger(__name__)

_job_repository: Optional[JobRepository] = None
_clip_repository: Optional[ClipRepository] = None
_storage: Optional[R2Storage] = None
_job_runner: Optional[JobRunner] = None
_reprocessor: Optional[ClipReprocessor] = None


def get_job_repository() -> JobRepository:
    global _job_repository
    if _job_repository is None:
        _job_repository = JobRepository()
    return _job_repository


def get_clip_repository() -> ClipRepository:
    global _clip_repository
    if _clip_repository is None:
        _clip_repository = ClipRepository()
    return _clip_repository


def get_storage() -> R2Storage:
    global _storage
    if _storage is None:
        _storage = R2Storage()
    return _storage


def get_cache() -> TTLCache:
    return get_pipeline_cache()


def build_orchestrator() -> PipelineOrchestrator:
    """Create a pipeline orchestrator backed by the configured services."""
    llm = GeminiClient()
    return PipelineOrchestrator(
        jobs=get_job_repository(),
        clips=get_clip_repository(),
        storage=get_storage(),
        cache=get_cache(),
        chunker=TranscriptionChunker(WhisperClient(), work_dir=WORK_DIR),
        ranker=HighlightRanker(llm),
        renderer=RenderBatchController(),
        text_writer=ClipTextWriter(llm),
        work_dir=WORK_DIR,
    )


async def _run_pipeline(job: JobRecord) -> None:
    # One orchestrator per job: it tracks the job it is currently writing.
    try:
        orchestrator = build_orchestrator()
    except RuntimeError as e:
        logger.error(f"Cannot start job {job.id}: {e}")
        await asyncio.to_thread(
            get_job_repository().update,
            job.id,
            {
                "stage": JobStage.FAILED,
                "status": JobStatus.FAILED,
                "message": "Error: pipeline services are not configured",
                "error": str(e)[:1000],
            },
        )
        return
    await orchestrator.run(job)


def get_job_runner() -> JobRunner:
    global _job_runner
    if _job_runner is None:
        _job_runner = JobRunner(_run_pipeline)
        logger.info("Job runner initialized")
    return _job_runner


def get_reprocessor() -> ClipReprocessor:
    global _reprocessor
    if _reprocessor is None:
        _reprocessor = ClipReprocessor(
            cache=get_cache(),
            storage=get_storage(),
            clips=get_clip_repository(),
        )
    return _reprocessor


async def shutdown_services() -> None:
    """Cancel running jobs on application shutdown."""
    if _job_runner is not None:
        await _job_runner.shutdown()
