"""
Chunked transcription of long media files.

Audio is extracted once, split into fixed-length chunks, and the chunks are
transcribed in bounded concurrent batches. Chunk-local timestamps are shifted
by chunk_index * chunk_seconds and merged into one global timeline.
"""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from reelforge.config import (
    PROGRESS_TRANSCRIBE,
    TRANSCRIBE_BATCH_SIZE,
    TRANSCRIBE_CHUNK_SECONDS,
)
from reelforge.core.errors import TranscriptionError
from reelforge.core.models import Transcript, TranscriptSegment
from reelforge.core.progress import ProgressEvent, ProgressSink, interpolate
from reelforge.core.speech import SpeechClient
from reelforge.core.utils.ffmpeg import run_ffmpeg
from reelforge.core.workflow.parallel import run_in_batches

logger = logging.getLogger(__name__)


def extract_audio(media_path: Path, audio_path: Path) -> Path:
    """Extract mono 16 kHz PCM audio from a media file."""
    run_ffmpeg([
        "ffmpeg", "-y",
        "-i", str(media_path),
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", "16000",
        "-ac", "1",
        str(audio_path),
    ])
    return audio_path


def split_audio(audio_path: Path, chunks_dir: Path, chunk_seconds: int) -> List[Path]:
    """
    Split audio into non-overlapping chunks of chunk_seconds.

    Returns:
        Chunk paths ordered by position in the source.
    """
    chunks_dir.mkdir(parents=True, exist_ok=True)
    run_ffmpeg([
        "ffmpeg", "-y",
        "-i", str(audio_path),
        "-f", "segment",
        "-segment_time", str(chunk_seconds),
        "-reset_timestamps", "1",
        "-c", "copy",
        str(chunks_dir / "chunk_%03d.wav"),
    ])
    return sorted(chunks_dir.glob("chunk_*.wav"))


class TranscriptionChunker:
    """Produces one Transcript for a whole file from chunked STT calls."""

    def __init__(
        self,
        speech_client: SpeechClient,
        chunk_seconds: int = TRANSCRIBE_CHUNK_SECONDS,
        batch_size: int = TRANSCRIBE_BATCH_SIZE,
        work_dir: Optional[Path] = None,
    ):
        self.speech_client = speech_client
        self.chunk_seconds = chunk_seconds
        self.batch_size = batch_size
        self.work_dir = work_dir

    async def transcribe(
        self,
        media_path: Path,
        language: str,
        progress: Optional[ProgressSink] = None,
    ) -> Transcript:
        """
        Transcribe a local audio or video file.

        Args:
            media_path: Source file.
            language: Language code passed to the speech service.
            progress: Optional sink for per-batch progress events.

        Returns:
            Transcript with segments sorted by start time.

        Raises:
            TranscriptionError: If extraction, splitting or any chunk fails.
        """
        if self.work_dir is not None:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        temp_dir = Path(tempfile.mkdtemp(prefix="transcribe_", dir=self.work_dir))

        try:
            try:
                audio_path = await asyncio.to_thread(
                    extract_audio, media_path, temp_dir / "audio.wav"
                )
                chunks = await asyncio.to_thread(
                    split_audio, audio_path, temp_dir / "chunks", self.chunk_seconds
                )
            except RuntimeError as e:
                raise TranscriptionError(f"Audio preparation failed: {e}") from e

            if not chunks:
                raise TranscriptionError(f"No audio chunks produced for {media_path.name}")

            logger.info(
                f"Transcribing {len(chunks)} chunks of {self.chunk_seconds}s "
                f"(batch size {self.batch_size})"
            )

            async def report(first_index: int, total: int) -> None:
                if progress is None:
                    return
                await progress.publish(
                    ProgressEvent.create(
                        "transcribe",
                        interpolate(PROGRESS_TRANSCRIBE, first_index, total),
                        f"Transcribing audio chunk {first_index + 1} of {total}",
                    )
                )

            async def transcribe_chunk(chunk_path: Path, index: int) -> List[TranscriptSegment]:
                try:
                    result = await asyncio.to_thread(
                        self.speech_client.transcribe, chunk_path, language
                    )
                except Exception as e:
                    raise TranscriptionError(f"Chunk {index} transcription failed: {e}") from e
                return self._offset_segments(result, index)

            per_chunk = await run_in_batches(chunks, self.batch_size, transcribe_chunk, report)

        finally:
            try:
                shutil.rmtree(temp_dir)
            except OSError as e:
                logger.warning(f"Failed to remove transcription temp dir {temp_dir}: {e}")

        segments = sorted(
            (seg for chunk_segments in per_chunk for seg in chunk_segments),
            key=lambda s: s.start,
        )
        duration = max((seg.end for seg in segments), default=0.0)

        logger.info(f"Transcript ready: {len(segments)} segments, {duration:.1f}s ({language})")
        return Transcript(segments=segments, language=language, duration=duration)

    def _offset_segments(self, result: dict, chunk_index: int) -> List[TranscriptSegment]:
        """Shift chunk-local segments onto the global timeline."""
        if not isinstance(result, dict):
            raise TranscriptionError(
                f"Chunk {chunk_index} returned {type(result).__name__}, expected dict"
            )

        offset = chunk_index * self.chunk_seconds
        raw_segments = result.get("segments") or []

        if not raw_segments:
            # No boundaries from the service: keep the chunk as one segment
            return [
                TranscriptSegment(
                    start=offset,
                    end=offset + self.chunk_seconds,
                    text=(result.get("text") or "").strip(),
                )
            ]

        try:
            return [
                TranscriptSegment(
                    start=float(seg["start"]) + offset,
                    end=float(seg["end"]) + offset,
                    text=(seg.get("text") or "").strip(),
                    confidence=seg.get("confidence"),
                )
                for seg in raw_segments
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise TranscriptionError(f"Malformed segment in chunk {chunk_index}: {e}") from e
