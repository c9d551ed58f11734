"""
Main clip generation workflow.

Runs one job through ingest, transcription, highlight selection, rendering,
text finalization and export, persisting progress as it goes.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable, Optional

from reelforge.config import (
    PROGRESS_COMPLETE,
    PROGRESS_EXPORT,
    PROGRESS_FINALIZE,
    PROGRESS_INGEST,
    PROGRESS_RENDER,
    PROGRESS_SCENES,
    PROGRESS_TRANSCRIBE,
    STAGE_MAX_ATTEMPTS,
    STAGE_RETRY_BACKOFF_SECONDS,
    WORK_DIR,
)
from reelforge.core import clipper
from reelforge.core.cache import TTLCache
from reelforge.core.errors import IngestError, PipelineError, RankingError, RenderError
from reelforge.core.progress import LoggingProgressSink, ProgressEvent, ProgressSink, interpolate
from reelforge.core.ranking import HighlightRanker
from reelforge.core.repositories.clips import ClipRepository
from reelforge.core.repositories.jobs import JobRepository
from reelforge.core.repositories.models import ClipRecord, JobRecord, JobStage, JobStatus, utcnow
from reelforge.core.reprocessing import BundleClip, ReprocessBundle, store_bundle
from reelforge.core.scene_detection import SceneDetectionOptions, SceneDetector
from reelforge.core.storage import R2Storage
from reelforge.core.subtitles import resolve_preferences
from reelforge.core.texts import ClipTextWriter
from reelforge.core.transcription import TranscriptionChunker
from reelforge.core.utils import probe_duration
from reelforge.core.workflow.clip_processor import RenderBatchController
from reelforge.core.workflow.context import ProcessingContext
from reelforge.core.workflow.validators import validate_segments

logger = logging.getLogger(__name__)

Downloader = Callable[[str, Path], Path]


class PipelineOrchestrator:
    """
    Drives a job through every stage.

    The orchestrator is the only writer of the job record. Stages receive
    the orchestrator itself as their progress sink; each event is persisted
    and then forwarded to the external sink. A stage that raises a
    retryable PipelineError is run again after an exponential backoff.
    """

    def __init__(
        self,
        jobs: JobRepository,
        clips: ClipRepository,
        storage: R2Storage,
        cache: TTLCache,
        chunker: TranscriptionChunker,
        ranker: HighlightRanker,
        renderer: RenderBatchController,
        text_writer: ClipTextWriter,
        work_dir: Path = WORK_DIR,
        sink: Optional[ProgressSink] = None,
        downloader: Downloader = clipper.download_video,
        duration_probe: Callable[[Path], float] = probe_duration,
        max_attempts: int = STAGE_MAX_ATTEMPTS,
        retry_backoff: float = STAGE_RETRY_BACKOFF_SECONDS,
    ):
        self.jobs = jobs
        self.clips = clips
        self.storage = storage
        self.cache = cache
        self.chunker = chunker
        self.ranker = ranker
        self.renderer = renderer
        self.text_writer = text_writer
        self.work_dir = work_dir
        self.sink = sink or LoggingProgressSink()
        self.downloader = downloader
        self.duration_probe = duration_probe
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self._job_id: Optional[str] = None
        self._percent = 0

    async def publish(self, event: ProgressEvent) -> None:
        """
        Persist a progress event on the current job and forward it.

        Percentages never move backwards within a run; a retried stage
        reports against the highest value already published.
        """
        if event.percent < self._percent:
            event = ProgressEvent.create(event.stage, self._percent, event.message)
        self._percent = event.percent
        if self._job_id is not None:
            await asyncio.to_thread(
                self.jobs.update,
                self._job_id,
                {"progress": event.percent, "message": event.message},
            )
        await self.sink.publish(event)

    async def _enter(self, stage: JobStage, percent: int, message: str) -> None:
        await asyncio.to_thread(
            self.jobs.update,
            self._job_id,
            {"stage": stage, "status": JobStatus.PROCESSING},
        )
        await self.publish(ProgressEvent.create(stage.value, percent, message))

    async def run(self, job: JobRecord) -> JobRecord:
        """
        Process a job end to end.

        Stage failures are recorded on the job and not re-raised; the
        returned record reflects the final state. Cancellation marks the
        job failed and propagates.
        """
        self._job_id = job.id
        self._percent = 0
        workdir = self.work_dir / job.id
        context = ProcessingContext(job=job, workdir=workdir)
        logger.info(f"Starting job {job.id} ({job.source_url or job.upload_key})")

        try:
            workdir.mkdir(parents=True, exist_ok=True)
            for stage in (
                self._ingest,
                self._transcribe,
                self._select_highlights,
                self._render,
                self._finalize,
                self._export,
            ):
                await self._run_stage(stage, context)

            await asyncio.to_thread(
                self.jobs.update,
                job.id,
                {
                    "stage": JobStage.COMPLETED,
                    "status": JobStatus.COMPLETED,
                    "completed_at": utcnow(),
                },
            )
            await self.publish(
                ProgressEvent.create(
                    JobStage.COMPLETED.value,
                    PROGRESS_COMPLETE,
                    f"Completed: {len(context.clip_records)} clips ready",
                )
            )
            logger.info(f"Job {job.id} complete with {len(context.clip_records)} clips")
        except asyncio.CancelledError:
            await self._fail(job.id, "Job cancelled")
            raise
        except PipelineError as e:
            logger.exception(f"Job {job.id} failed in {e.stage}: {e}")
            await self._fail(job.id, str(e))
        except Exception as e:
            logger.exception(f"Job {job.id} failed unexpectedly: {e}")
            await self._fail(job.id, str(e))
        finally:
            self._cleanup(workdir)
            self._job_id = None

        return await asyncio.to_thread(self.jobs.get, job.id)

    async def _run_stage(
        self,
        stage: Callable[[ProcessingContext], Awaitable[None]],
        context: ProcessingContext,
    ) -> None:
        attempt = 1
        while True:
            try:
                await stage(context)
                return
            except PipelineError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    raise
                delay = self.retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    f"Job {context.job.id}: {e.stage} failed on attempt {attempt}/{self.max_attempts}, "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await self.publish(
                    ProgressEvent.create(
                        e.stage,
                        self._percent,
                        f"Retrying {e.stage} (attempt {attempt + 1} of {self.max_attempts})",
                    )
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _fail(self, job_id: str, error: str) -> None:
        try:
            await asyncio.to_thread(
                self.jobs.update,
                job_id,
                {
                    "stage": JobStage.FAILED,
                    "status": JobStatus.FAILED,
                    "progress": 0,
                    "message": f"Error: {error}"[:500],
                    "error": error[:1000],
                },
            )
        except Exception as e:
            logger.error(f"Could not record failure of job {job_id}: {e}", exc_info=True)

        try:
            await self.sink.publish(ProgressEvent.create(JobStage.FAILED.value, 0, f"Error: {error}"))
        except Exception as e:
            logger.error(f"Could not publish failure of job {job_id}: {e}", exc_info=True)

    def _cleanup(self, workdir: Path) -> None:
        try:
            if workdir.exists():
                shutil.rmtree(workdir)
                logger.info(f"Cleaned up {workdir}")
        except OSError as e:
            logger.warning(f"Cleanup of {workdir} failed: {e}")

    async def _ingest(self, context: ProcessingContext) -> None:
        job = context.job
        start, end = PROGRESS_INGEST
        await self._enter(JobStage.INGEST, start, "Fetching source video")

        video_file = context.workdir / "source.mp4"
        try:
            if job.source_url:
                await asyncio.to_thread(self.downloader, job.source_url, video_file)
            else:
                await asyncio.to_thread(self.storage.download, job.upload_key, video_file)
            duration = await asyncio.to_thread(self.duration_probe, video_file)
        except (RuntimeError, OSError) as e:
            raise IngestError(f"Could not fetch source video: {e}") from e

        if duration <= 0:
            raise IngestError("Source video has no duration")

        context.video_file = video_file
        context.video_duration = duration
        await self.publish(
            ProgressEvent.create(JobStage.INGEST.value, end, f"Source video ready ({duration:.0f}s)")
        )

    async def _transcribe(self, context: ProcessingContext) -> None:
        await self._enter(JobStage.TRANSCRIBE, PROGRESS_TRANSCRIBE[0], "Transcribing audio")
        context.transcript = await self.chunker.transcribe(
            context.video_file, context.job.language, progress=self
        )

    async def _select_highlights(self, context: ProcessingContext) -> None:
        job = context.job
        start, end = PROGRESS_SCENES
        await self._enter(JobStage.SCENES, start, "Detecting scenes")

        detector = SceneDetector(
            SceneDetectionOptions(
                min_scene_duration=job.min_duration,
                max_scene_duration=job.max_duration,
                target_scene_count=max(10, 2 * job.clip_count),
            )
        )
        context.scenes = detector.detect(context.transcript)
        await self.publish(
            ProgressEvent.create(
                JobStage.SCENES.value,
                (start + end) // 2,
                f"Ranking {len(context.scenes)} scenes",
            )
        )

        options = job.analysis_options()
        result = await self.ranker.rank(context.scenes, context.transcript, options)
        context.reasoning = result.reasoning
        context.used_fallback = result.used_fallback
        path = "full-transcript fallback" if context.used_fallback else "scene"
        logger.info(
            f"Job {job.id}: {len(result.segments)} highlights from {path} ranking. "
            f"Reasoning: {context.reasoning or '(none given)'}"
        )

        segments = validate_segments(
            result.segments,
            context.video_duration,
            options.min_duration,
            options.max_duration,
        )
        if not segments:
            raise RankingError("No valid highlight segments")
        context.segments = segments[: options.clip_count]

        await self.publish(
            ProgressEvent.create(
                JobStage.SCENES.value,
                end,
                f"Selected {len(context.segments)} highlights",
            )
        )

    async def _render(self, context: ProcessingContext) -> None:
        job = context.job
        await self._enter(JobStage.RENDER, PROGRESS_RENDER[0], f"Rendering {len(context.segments)} clips")

        preferences = None
        if job.subtitles:
            preferences = resolve_preferences(self.cache, job.id, None, job.subtitle_preferences)

        context.clips = await self.renderer.render_all(
            context.video_file,
            context.segments,
            context.transcript,
            context.clips_dir,
            aspect_ratio=job.aspect_ratio,
            subtitles=job.subtitles,
            preferences=preferences,
            progress=self,
        )

    async def _finalize(self, context: ProcessingContext) -> None:
        start, end = PROGRESS_FINALIZE
        await self._enter(JobStage.FINALIZE, start, "Writing titles and descriptions")
        context.clips = await self.text_writer.finalize_all(context.clips, context.transcript)
        await self.publish(ProgressEvent.create(JobStage.FINALIZE.value, end, "Clip texts ready"))

    async def _export(self, context: ProcessingContext) -> None:
        job = context.job
        start, end = PROGRESS_EXPORT
        total = len(context.clips)
        await self._enter(JobStage.EXPORT, start, f"Uploading {total} clips")

        for i, clip in enumerate(context.clips):
            video_key = f"clips/{job.id}/{clip.id}.mp4"
            thumbnail_key = f"clips/{job.id}/{clip.id}.jpg"
            try:
                video_url = await asyncio.to_thread(
                    self.storage.upload, video_key, clip.video_path, "video/mp4"
                )
                thumbnail_url = await asyncio.to_thread(
                    self.storage.upload, thumbnail_key, clip.thumbnail_path, "image/jpeg"
                )
            except RuntimeError as e:
                raise RenderError(f"Upload of clip {clip.index + 1} failed: {e}", stage="export") from e

            record = ClipRecord(
                id=clip.id,
                job_id=job.id,
                index=clip.index,
                start=clip.segment.start,
                end=clip.segment.end,
                duration=clip.duration,
                score=clip.segment.score,
                title=clip.title or clip.segment.title,
                description=clip.description,
                hashtags=clip.hashtags,
                keywords=clip.segment.keywords,
                video_key=video_key,
                thumbnail_key=thumbnail_key,
                video_url=video_url,
                thumbnail_url=thumbnail_url,
            )
            context.clip_records.append(await asyncio.to_thread(self.clips.upsert, record))
            await self.publish(
                ProgressEvent.create(
                    JobStage.EXPORT.value,
                    interpolate((start, end - 2), i + 1, total),
                    f"Uploaded clip {i + 1} of {total}",
                )
            )

        source_key = f"sources/{job.id}/source.mp4"
        try:
            await asyncio.to_thread(self.storage.upload, source_key, context.video_file, "video/mp4")
            context.source_key = source_key
        except RuntimeError as e:
            logger.warning(f"Source upload for job {job.id} failed, re-rendering will be unavailable: {e}")

        store_bundle(
            self.cache,
            ReprocessBundle(
                job_id=job.id,
                source_key=context.source_key,
                video_duration=context.video_duration,
                aspect_ratio=job.aspect_ratio,
                subtitle_preferences=job.subtitle_preferences,
                transcript=context.transcript,
                clips=[
                    BundleClip(
                        id=clip.id,
                        index=clip.index,
                        start=clip.segment.start,
                        end=clip.segment.end,
                        title=clip.title or clip.segment.title,
                        score=clip.segment.score,
                        reason=clip.segment.reason,
                        keywords=clip.segment.keywords,
                    )
                    for clip in context.clips
                ],
            ),
        )
        await self.publish(ProgressEvent.create(JobStage.EXPORT.value, end, "Export finished"))
