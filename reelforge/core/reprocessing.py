"""
Single-clip re-rendering.

A completed job leaves a reprocess bundle in the cache: the source video
reference, the full transcript and per-clip timing. ClipReprocessor uses it
to re-render one clip with new caption preferences at high quality,
without repeating ingest, transcription or highlight selection.
"""

import asyncio
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from reelforge.config import REPROCESS_TTL_SECONDS, RERENDER_TIMEOUT_SECONDS, WORK_DIR
from reelforge.core.cache import TTLCache, reprocess_key
from reelforge.core.errors import RenderError, SourceVideoNotFoundError
from reelforge.core.models import HighlightSegment, SubtitlePreferences, Transcript
from reelforge.core.repositories.clips import ClipRepository
from reelforge.core.repositories.models import ClipRecord, utcnow
from reelforge.core.storage import R2Storage
from reelforge.core.subtitles import resolve_preferences
from reelforge.core.utils.ffmpeg import FFmpegTimeoutError
from reelforge.core.workflow.clip_processor import RenderBatchController

logger = logging.getLogger(__name__)


class ReprocessingError(Exception):
    """Base exception for reprocessing errors."""
    pass


class BundleNotFoundError(ReprocessingError):
    """Raised when no reprocess bundle exists for a job (expired or never stored)."""
    pass


class ClipNotFoundError(ReprocessingError):
    """Raised when the requested clip is not part of the bundle."""
    pass


class RerenderTimeoutError(ReprocessingError):
    """Raised when a re-render exceeds its time limit."""
    pass


class BundleClip(BaseModel):
    """Timing and ranking data of one exported clip."""

    id: str
    index: int
    start: float
    end: float
    title: str
    score: float = 0.5
    reason: str = ""
    keywords: List[str] = Field(default_factory=list)

    def to_segment(self) -> HighlightSegment:
        return HighlightSegment(
            start=self.start,
            end=self.end,
            score=self.score,
            title=self.title,
            reason=self.reason,
            keywords=self.keywords,
        )


class ReprocessBundle(BaseModel):
    """Everything needed to re-render any clip of a job."""

    job_id: str
    source_key: Optional[str] = None
    video_duration: float
    aspect_ratio: str = "9:16"
    subtitle_preferences: Optional[Dict[str, Any]] = None
    transcript: Transcript
    clips: List[BundleClip]

    def find_clip(self, clip_id: str) -> BundleClip:
        for clip in self.clips:
            if clip.id == clip_id:
                return clip
        raise ClipNotFoundError(f"Clip {clip_id} not found in job {self.job_id}")


def store_bundle(cache: TTLCache, bundle: ReprocessBundle) -> None:
    cache.set(reprocess_key(bundle.job_id), bundle.model_dump(mode="json"), ttl=REPROCESS_TTL_SECONDS)


def load_bundle(cache: TTLCache, job_id: str) -> ReprocessBundle:
    """
    Load the reprocess bundle of a job.

    Raises:
        BundleNotFoundError: If the bundle is missing or expired.
    """
    data = cache.get(reprocess_key(job_id))
    if not data:
        raise BundleNotFoundError(f"No reprocess data for job {job_id}")
    return ReprocessBundle.model_validate(data)


class ClipReprocessor:
    """
    Service class for re-rendering single clips.

    Never touches the job record; only the clip row and the cache change.
    """

    def __init__(
        self,
        cache: TTLCache,
        storage: R2Storage,
        clips: ClipRepository,
        renderer: Optional[RenderBatchController] = None,
        work_dir: Path = WORK_DIR,
        timeout_seconds: float = RERENDER_TIMEOUT_SECONDS,
    ):
        self.cache = cache
        self.storage = storage
        self.clips = clips
        self.renderer = renderer or RenderBatchController()
        self.work_dir = work_dir
        self.timeout_seconds = timeout_seconds

    async def rerender(
        self,
        job_id: str,
        clip_id: str,
        preferences: Optional[Dict[str, Any]] = None,
    ) -> ClipRecord:
        """
        Re-render one clip with new caption preferences.

        Args:
            job_id: Job the clip belongs to.
            clip_id: Clip to re-render.
            preferences: Optional caption overrides for this render, applied
                on top of cached overrides and the job's preferences.

        Returns:
            The updated clip record.

        Raises:
            BundleNotFoundError: If the job has no reprocess bundle.
            ClipNotFoundError: If the clip is not in the bundle.
            SourceVideoNotFoundError: If the source video is gone.
            RerenderTimeoutError: If rendering takes too long.
            RenderError: If transcoding or upload fails.
        """
        bundle = load_bundle(self.cache, job_id)
        entry = bundle.find_clip(clip_id)

        resolved = resolve_preferences(self.cache, job_id, clip_id, bundle.subtitle_preferences)
        if preferences:
            resolved = SubtitlePreferences.model_validate({**resolved.model_dump(), **preferences})

        workdir = self.work_dir / f"rerender_{job_id}_{clip_id}_{uuid.uuid4().hex[:8]}"
        # ffmpeg is killed at the deadline, so the workdir is only removed
        # once nothing writes into it any more.
        deadline = time.monotonic() + self.timeout_seconds
        try:
            return await self._rerender(bundle, entry, resolved, workdir, deadline)
        except FFmpegTimeoutError as e:
            raise RerenderTimeoutError(
                f"Re-render of clip {clip_id} exceeded {self.timeout_seconds:.0f}s"
            ) from e
        finally:
            try:
                if workdir.exists():
                    shutil.rmtree(workdir)
            except OSError as e:
                logger.warning(f"Failed to remove re-render dir {workdir}: {e}")

    async def _obtain_source(self, bundle: ReprocessBundle, workdir: Path) -> Path:
        if not bundle.source_key:
            raise SourceVideoNotFoundError(f"No source video stored for job {bundle.job_id}")

        target = workdir / f"source{Path(bundle.source_key).suffix or '.mp4'}"
        try:
            return await asyncio.to_thread(self.storage.download, bundle.source_key, target)
        except FileNotFoundError as e:
            raise SourceVideoNotFoundError(
                f"Original video for job {bundle.job_id} is no longer available"
            ) from e
        except RuntimeError as e:
            raise RenderError(f"Could not fetch original video: {e}") from e

    async def _rerender(
        self,
        bundle: ReprocessBundle,
        entry: BundleClip,
        preferences: SubtitlePreferences,
        workdir: Path,
        deadline: float,
    ) -> ClipRecord:
        workdir.mkdir(parents=True, exist_ok=True)
        source = await self._obtain_source(bundle, workdir)
        if time.monotonic() >= deadline:
            raise FFmpegTimeoutError("Deadline passed while fetching the source video")

        clip = await self.renderer.rerender_clip(
            source,
            entry.id,
            entry.to_segment(),
            bundle.transcript,
            workdir / "out",
            aspect_ratio=bundle.aspect_ratio,
            preferences=preferences,
            index=entry.index,
            deadline=deadline,
        )

        version = int(time.time())
        video_key = f"clips/{bundle.job_id}/{entry.id}_v{version}.mp4"
        thumbnail_key = f"clips/{bundle.job_id}/{entry.id}_v{version}.jpg"
        try:
            video_url = await asyncio.to_thread(
                self.storage.upload, video_key, clip.video_path, "video/mp4"
            )
            thumbnail_url = await asyncio.to_thread(
                self.storage.upload, thumbnail_key, clip.thumbnail_path, "image/jpeg"
            )
        except RuntimeError as e:
            raise RenderError(f"Upload of re-rendered clip {entry.id} failed: {e}") from e

        existing = await asyncio.to_thread(self.clips.get, bundle.job_id, entry.id)
        updates = {
            "video_key": video_key,
            "thumbnail_key": thumbnail_key,
            "video_url": video_url,
            "thumbnail_url": thumbnail_url,
        }
        if existing is not None:
            record = existing.model_copy(update=updates)
        else:
            record = ClipRecord(
                id=entry.id,
                job_id=bundle.job_id,
                index=entry.index,
                start=entry.start,
                end=entry.end,
                duration=entry.end - entry.start,
                score=entry.score,
                title=entry.title,
                keywords=entry.keywords,
                **updates,
            )
        record = await asyncio.to_thread(self.clips.upsert, record)

        self.cache.set(
            reprocess_key(bundle.job_id, entry.id),
            {
                "video_url": video_url,
                "thumbnail_url": thumbnail_url,
                "preferences": preferences.model_dump(),
                "rendered_at": utcnow().isoformat(),
            },
            ttl=REPROCESS_TTL_SECONDS,
        )
        logger.info(f"Re-rendered clip {entry.id} of job {bundle.job_id}")
        return record
