"""
Clip rendering for the video workflow.

Renders highlight segments in bounded concurrent batches and re-renders
single clips at higher quality.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from reelforge.config import PROGRESS_RENDER, RENDER_BATCH_SIZE
from reelforge.core import clipper
from reelforge.core.errors import RenderError, SourceVideoNotFoundError
from reelforge.core.models import HighlightSegment, RenderedClip, SubtitlePreferences, Transcript
from reelforge.core.progress import ProgressEvent, ProgressSink, interpolate
from reelforge.core.subtitles import DEFAULT_SUBTITLE_PREFERENCES, write_ass_file
from reelforge.core.utils.ffmpeg import FFmpegTimeoutError
from reelforge.core.workflow.parallel import run_in_batches

logger = logging.getLogger(__name__)


def new_clip_id() -> str:
    return uuid.uuid4().hex[:12]


def _time_left(deadline: Optional[float]) -> Optional[float]:
    """Seconds until a time.monotonic() deadline; None means unbounded."""
    if deadline is None:
        return None
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise FFmpegTimeoutError("Render deadline passed")
    return remaining


def _render_files(
    video_file: Path,
    output_dir: Path,
    clip_id: str,
    segment: HighlightSegment,
    transcript: Transcript,
    aspect_ratio: str,
    preferences: Optional[SubtitlePreferences],
    quality: clipper.RenderQuality,
    thumbnail_at: float,
    deadline: Optional[float] = None,
) -> tuple[Path, Path]:
    """Blocking part of a render: captions, transcode, thumbnail."""
    duration = segment.end - segment.start
    subtitle_path = None

    if preferences is not None:
        caption_segments = transcript.segments_between(segment.start, segment.end)
        if caption_segments:
            subtitle_path = write_ass_file(
                output_dir / f"{clip_id}.ass",
                caption_segments,
                clip_start=segment.start,
                clip_duration=duration,
                preferences=preferences,
            )

    video_path = clipper.render_clip(
        video_file,
        output_dir / f"{clip_id}.mp4",
        segment.start,
        segment.end,
        aspect_ratio,
        quality,
        subtitle_path=subtitle_path,
        timeout=_time_left(deadline),
    )
    thumbnail_path = clipper.extract_thumbnail(
        video_path,
        output_dir / f"{clip_id}.jpg",
        thumbnail_at,
        quality=quality.thumbnail_quality,
        timeout=_time_left(deadline),
    )
    return video_path, thumbnail_path


class RenderBatchController:
    """
    Renders validated highlight segments into finished clips.

    Segments are processed in batches of batch_size concurrent renders;
    a batch is fully awaited before the next starts. Any render failure
    fails the whole stage.
    """

    def __init__(
        self,
        batch_size: int = RENDER_BATCH_SIZE,
        quality: Optional[clipper.RenderQuality] = None,
    ):
        self.batch_size = batch_size
        self.quality = quality or clipper.batch_quality()

    async def render_all(
        self,
        video_file: Path,
        segments: Sequence[HighlightSegment],
        transcript: Transcript,
        output_dir: Path,
        aspect_ratio: str = "9:16",
        subtitles: bool = True,
        preferences: Optional[SubtitlePreferences] = None,
        progress: Optional[ProgressSink] = None,
    ) -> List[RenderedClip]:
        """
        Render every segment.

        Args:
            video_file: Source video.
            segments: Validated segments, in the order clips should be listed.
            transcript: Transcript used for captions.
            output_dir: Directory receiving clip, caption and thumbnail files.
            aspect_ratio: One of 9:16, 1:1, 16:9.
            subtitles: Burn captions into the clips.
            preferences: Caption styling; defaults apply when omitted.
            progress: Optional sink for per-batch progress events.

        Returns:
            One RenderedClip per segment, in input order.

        Raises:
            RenderError: If any clip fails to render.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        caption_prefs = (preferences or DEFAULT_SUBTITLE_PREFERENCES) if subtitles else None
        total = len(segments)
        logger.info(f"Rendering {total} clips in batches of {self.batch_size}")

        async def report(first_index: int, count: int) -> None:
            if progress is None:
                return
            await progress.publish(
                ProgressEvent.create(
                    "render",
                    interpolate(PROGRESS_RENDER, first_index, count),
                    f"Rendering clip {first_index + 1} of {count}",
                )
            )

        async def render(segment: HighlightSegment, index: int) -> RenderedClip:
            clip_id = new_clip_id()
            duration = segment.end - segment.start
            logger.info(
                f"Rendering clip {index + 1}/{total}: {segment.title} "
                f"({segment.start:.2f}-{segment.end:.2f})"
            )
            try:
                video_path, thumbnail_path = await asyncio.to_thread(
                    _render_files,
                    video_file,
                    output_dir,
                    clip_id,
                    segment,
                    transcript,
                    aspect_ratio,
                    caption_prefs,
                    self.quality,
                    min(2.0, duration / 2),
                )
            except (RuntimeError, OSError) as e:
                raise RenderError(f"Clip {index + 1} ({segment.title}) failed: {e}") from e

            return RenderedClip(
                id=clip_id,
                index=index,
                video_path=video_path,
                thumbnail_path=thumbnail_path,
                duration=duration,
                segment=segment,
                title=segment.title,
            )

        clips = await run_in_batches(list(segments), self.batch_size, render, report)
        logger.info(f"Rendered {len(clips)} clips into {output_dir}")
        return clips

    async def rerender_clip(
        self,
        video_file: Path,
        clip_id: str,
        segment: HighlightSegment,
        transcript: Transcript,
        output_dir: Path,
        aspect_ratio: str = "9:16",
        preferences: Optional[SubtitlePreferences] = None,
        index: int = 0,
        deadline: Optional[float] = None,
    ) -> RenderedClip:
        """
        Re-render one clip at high quality against the original source.

        deadline is a time.monotonic() value; ffmpeg still running then is
        killed, so no work outlives the call.

        Raises:
            SourceVideoNotFoundError: If video_file does not exist.
            FFmpegTimeoutError: If the deadline passes.
            RenderError: If transcoding fails.
        """
        if not video_file.exists():
            raise SourceVideoNotFoundError(f"Original video not found: {video_file}")

        output_dir.mkdir(parents=True, exist_ok=True)
        duration = segment.end - segment.start
        logger.info(f"Re-rendering clip {clip_id} ({segment.start:.2f}-{segment.end:.2f})")

        try:
            video_path, thumbnail_path = await asyncio.to_thread(
                _render_files,
                video_file,
                output_dir,
                clip_id,
                segment,
                transcript,
                aspect_ratio,
                preferences or DEFAULT_SUBTITLE_PREFERENCES,
                clipper.RERENDER_QUALITY,
                duration / 2,
                deadline,
            )
        except FFmpegTimeoutError:
            raise
        except (RuntimeError, OSError) as e:
            raise RenderError(f"Re-render of clip {clip_id} failed: {e}") from e

        return RenderedClip(
            id=clip_id,
            index=index,
            video_path=video_path,
            thumbnail_path=thumbnail_path,
            duration=duration,
            segment=segment,
            title=segment.title,
        )
