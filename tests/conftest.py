"""
Shared fakes for the test suite.

External services are replaced by in-memory objects that follow the same
interfaces as the real clients and repositories.
"""

import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from reelforge.core.cache import TTLCache
from reelforge.core.models import HighlightSegment, RenderedClip, Transcript, TranscriptSegment
from reelforge.core.progress import ProgressEvent
from reelforge.core.repositories.exceptions import ConflictError, NotFoundError, ValidationError
from reelforge.core.repositories.models import ClipRecord, JobRecord, utcnow


class FakeLLM:
    """LLM client returning queued responses; an Exception entry is raised."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.prompts: List[str] = []

    def generate_json(self, prompt: str, system_instruction: Optional[str] = None) -> Dict[str, Any]:
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("No response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSpeechClient:
    """Speech client mapping chunk file names to canned results."""

    def __init__(self, results: Dict[str, Any]):
        self.results = results
        self.calls: List[str] = []

    def transcribe(self, audio_path: Path, language: str) -> Dict[str, Any]:
        self.calls.append(Path(audio_path).name)
        result = self.results[Path(audio_path).name]
        if isinstance(result, Exception):
            raise result
        return result


class FakeJobRepository:
    """In-memory JobRepository."""

    def __init__(self):
        self.jobs: Dict[str, JobRecord] = {}
        self.updates: List[Dict[str, Any]] = []

    def create(self, job: JobRecord) -> JobRecord:
        if job.id in self.jobs:
            raise ConflictError(f"Job {job.id} already exists")
        self.jobs[job.id] = job
        return job

    def get(self, job_id: str) -> JobRecord:
        if job_id not in self.jobs:
            raise NotFoundError(f"Job {job_id} not found")
        return self.jobs[job_id]

    def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        allowed = {"stage", "status", "progress", "message", "error", "completed_at"}
        if set(fields) - allowed:
            raise ValidationError("Fields not updatable")
        self.updates.append(dict(fields))
        job = self.get(job_id)
        self.jobs[job_id] = job.model_copy(update={**fields, "updated_at": utcnow()})


class FakeClipRepository:
    """In-memory ClipRepository."""

    def __init__(self):
        self.clips: Dict[tuple, ClipRecord] = {}

    def upsert(self, clip: ClipRecord) -> ClipRecord:
        self.clips[(clip.job_id, clip.id)] = clip
        return clip

    def get(self, job_id: str, clip_id: str) -> Optional[ClipRecord]:
        return self.clips.get((job_id, clip_id))

    def list_by_job(self, job_id: str) -> List[ClipRecord]:
        return sorted(
            (c for (j, _), c in self.clips.items() if j == job_id),
            key=lambda c: c.index,
        )


class FakeStorage:
    """Object storage backed by a dict of key -> bytes."""

    def __init__(self, objects: Optional[Dict[str, bytes]] = None):
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.fail_uploads = False

    def upload(self, key: str, path: Path, content_type: str) -> str:
        if self.fail_uploads:
            raise RuntimeError(f"Failed to upload {key}")
        self.objects[key] = Path(path).read_bytes()
        return f"https://cdn.example.com/{key}"

    def download(self, key: str, path: Path) -> Path:
        if key not in self.objects:
            raise FileNotFoundError(key)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.objects[key])
        return path


class FakeChunker:
    """Transcription stage returning a fixed transcript."""

    def __init__(self, transcript: Transcript, error: Optional[Exception] = None):
        self.transcript = transcript
        self.error = error

    async def transcribe(self, media_path: Path, language: str, progress=None) -> Transcript:
        if self.error is not None:
            raise self.error
        if progress is not None:
            await progress.publish(ProgressEvent.create("transcribe", 30, "Transcribing audio chunk 1 of 1"))
        return self.transcript


class FakeRenderer:
    """Render stage writing small placeholder files instead of calling ffmpeg."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.rendered: List[HighlightSegment] = []
        self.rerendered: List[str] = []

    async def render_all(
        self,
        video_file: Path,
        segments,
        transcript,
        output_dir: Path,
        aspect_ratio: str = "9:16",
        subtitles: bool = True,
        preferences=None,
        progress=None,
    ) -> List[RenderedClip]:
        if self.error is not None:
            raise self.error
        output_dir.mkdir(parents=True, exist_ok=True)
        clips = []
        for index, segment in enumerate(segments):
            clips.append(_write_clip(output_dir, f"clip{index}", index, segment))
            self.rendered.append(segment)
        return clips

    async def rerender_clip(
        self,
        video_file: Path,
        clip_id: str,
        segment: HighlightSegment,
        transcript,
        output_dir: Path,
        aspect_ratio: str = "9:16",
        preferences=None,
        index: int = 0,
        deadline=None,
    ) -> RenderedClip:
        if self.error is not None:
            raise self.error
        output_dir.mkdir(parents=True, exist_ok=True)
        self.rerendered.append(clip_id)
        return _write_clip(output_dir, clip_id, index, segment)


def _write_clip(output_dir: Path, clip_id: str, index: int, segment: HighlightSegment) -> RenderedClip:
    video_path = output_dir / f"{clip_id}.mp4"
    thumbnail_path = output_dir / f"{clip_id}.jpg"
    video_path.write_bytes(b"video")
    thumbnail_path.write_bytes(b"jpeg")
    return RenderedClip(
        id=clip_id,
        index=index,
        video_path=video_path,
        thumbnail_path=thumbnail_path,
        duration=segment.end - segment.start,
        segment=segment,
        title=segment.title,
    )


class ManualClock:
    """Clock for TTLCache tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_transcript(
    spans: List[tuple],
    language: str = "en",
    duration: Optional[float] = None,
) -> Transcript:
    """Build a transcript from (start, end, text) tuples."""
    segments = [TranscriptSegment(start=s, end=e, text=t) for s, e, t in spans]
    return Transcript(
        segments=segments,
        language=language,
        duration=duration if duration is not None else max((e for _, e, _ in spans), default=0.0),
    )


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache(default_ttl_seconds=3600)


@pytest.fixture
def job_repo() -> FakeJobRepository:
    return FakeJobRepository()


@pytest.fixture
def clip_repo() -> FakeClipRepository:
    return FakeClipRepository()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def sample_transcript() -> Transcript:
    spans = []
    for i in range(20):
        start = i * 10.0
        spans.append((start, start + 9.0, f"Sentence number {i} about topic {i // 5}."))
    return make_transcript(spans, duration=200.0)


@pytest.fixture
def downloader() -> Callable[[str, Path], Path]:
    """Downloader stub writing a placeholder source video."""

    def download(url: str, video_file: Path) -> Path:
        video_file.parent.mkdir(parents=True, exist_ok=True)
        video_file.write_bytes(b"source")
        return video_file

    return download


@pytest.fixture
def work_dir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    yield path
    shutil.rmtree(path, ignore_errors=True)
