"""
Tests for the pipeline orchestrator.

Run with: pytest tests/test_processor.py -v
"""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeChunker, FakeLLM, FakeRenderer
from reelforge.core.cache import reprocess_key
from reelforge.core.errors import IngestError, RenderError, TranscriptionError
from reelforge.core.progress import CollectingProgressSink
from reelforge.core.ranking import HighlightRanker
from reelforge.core.repositories.models import JobRecord, JobStage, JobStatus
from reelforge.core.texts import ClipTextWriter
from reelforge.core.workflow.processor import PipelineOrchestrator


def _ranking_response(count):
    return {
        "segments": [
            {"start": i * 40.0, "end": i * 40.0 + 35.0, "score": 0.5 + i / 100, "title": f"Moment {i}"}
            for i in range(count)
        ],
        "reasoning": "test",
    }


def _texts_response(title):
    return {"title": title, "description": "desc", "hashtags": ["one", "two", "three"]}


class FlakyChunker(FakeChunker):
    """Raises the given error for the first `failures` calls, then succeeds."""

    def __init__(self, transcript, error, failures):
        super().__init__(transcript)
        self.failing_error = error
        self.failures = failures
        self.calls = 0

    async def transcribe(self, media_path, language, progress=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.failing_error
        return await super().transcribe(media_path, language, progress=progress)


@pytest.fixture
def job(job_repo):
    record = JobRecord(
        id="job1",
        source_url="https://example.com/watch?v=1",
        clip_count=2,
        min_duration=30,
        max_duration=60,
        target_duration=45,
    )
    job_repo.create(record)
    return record


def _orchestrator(
    job_repo, clip_repo, storage, cache, work_dir, downloader, *, chunker, llm, renderer=None, sink=None, max_attempts=3
):
    return PipelineOrchestrator(
        jobs=job_repo,
        clips=clip_repo,
        storage=storage,
        cache=cache,
        chunker=chunker,
        ranker=HighlightRanker(llm),
        renderer=renderer or FakeRenderer(),
        text_writer=ClipTextWriter(llm),
        work_dir=work_dir,
        sink=sink,
        downloader=downloader,
        duration_probe=lambda path: 200.0,
        max_attempts=max_attempts,
        retry_backoff=0,
    )


class TestPipelineOrchestrator:
    """Tests for PipelineOrchestrator."""

    @pytest.mark.asyncio
    async def test_successful_run(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        # Too few scenes for the primary path: the fallback analysis response comes first
        llm = FakeLLM([_ranking_response(3), _texts_response("First"), _texts_response("Second")])
        sink = CollectingProgressSink()
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript), llm=llm, sink=sink,
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.COMPLETED
        assert result.stage == JobStage.COMPLETED
        assert result.progress == 100
        assert result.completed_at is not None

        clips = clip_repo.list_by_job("job1")
        assert len(clips) == 2
        assert [c.title for c in clips] == ["First", "Second"]
        assert all(c.video_url.startswith("https://cdn.example.com/clips/job1/") for c in clips)
        assert "sources/job1/source.mp4" in storage.objects

        bundle = cache.get(reprocess_key("job1"))
        assert bundle["source_key"] == "sources/job1/source.mp4"
        assert [c["id"] for c in bundle["clips"]] == [c.id for c in clips]

        percents = [e.percent for e in sink.events]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        stages = [e.stage for e in sink.events]
        for stage in ["ingest", "transcribe", "scenes", "render", "finalize", "export", "completed"]:
            assert stage in stages

        assert not (work_dir / "job1").exists()

    @pytest.mark.asyncio
    async def test_clip_count_bounds_rendered_clips(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        llm = FakeLLM([_ranking_response(4)] + [_texts_response("T")] * 4)
        renderer = FakeRenderer()
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript), llm=llm, renderer=renderer,
        )

        await orchestrator.run(job)

        assert len(renderer.rendered) <= job.clip_count
        scores = [s.score for s in renderer.rendered]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_stage_failure_marks_job_failed(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        sink = CollectingProgressSink()
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript, error=TranscriptionError("chunk 2 failed")),
            llm=FakeLLM([]),
            sink=sink,
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.FAILED
        assert result.stage == JobStage.FAILED
        assert result.progress == 0
        assert result.error == "chunk 2 failed"
        assert sink.events[-1].message == "Error: chunk 2 failed"
        assert sink.events[-1].percent == 0
        assert clip_repo.list_by_job("job1") == []
        assert not (work_dir / "job1").exists()

    @pytest.mark.asyncio
    async def test_render_failure_exposes_no_clips(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript),
            llm=FakeLLM([_ranking_response(2)]),
            renderer=FakeRenderer(error=RenderError("clip 2 failed")),
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.FAILED
        assert clip_repo.list_by_job("job1") == []
        assert cache.get(reprocess_key("job1")) is None

    @pytest.mark.asyncio
    async def test_no_valid_segments_fails(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        too_short = {"segments": [{"start": 0, "end": 5, "score": 0.9, "title": "Blink"}]}
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript), llm=FakeLLM([too_short]),
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.FAILED
        assert "No valid highlight segments" in result.error

    @pytest.mark.asyncio
    async def test_download_failure_is_ingest_error(
        self, job, job_repo, clip_repo, storage, cache, work_dir, sample_transcript
    ):
        def broken_download(url, path):
            raise RuntimeError("Video download failed: 403")

        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, broken_download,
            chunker=FakeChunker(sample_transcript), llm=FakeLLM([]),
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.FAILED
        assert "Could not fetch source video" in result.error

    @pytest.mark.asyncio
    async def test_cancellation_marks_failed_and_propagates(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        class SlowChunker(FakeChunker):
            async def transcribe(self, media_path, language, progress=None):
                await asyncio.sleep(10)

        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=SlowChunker(sample_transcript), llm=FakeLLM([]),
        )

        task = asyncio.create_task(orchestrator.run(job))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert job_repo.get("job1").status == JobStatus.FAILED
        assert not (work_dir / "job1").exists()

    @pytest.mark.asyncio
    async def test_transient_transcription_failure_is_retried(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        llm = FakeLLM([_ranking_response(3), _texts_response("First"), _texts_response("Second")])
        sink = CollectingProgressSink()
        chunker = FlakyChunker(sample_transcript, TranscriptionError("rate limited"), failures=1)
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=chunker, llm=llm, sink=sink,
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.COMPLETED
        assert result.error is None
        assert chunker.calls == 2
        assert "Retrying transcribe (attempt 2 of 3)" in [e.message for e in sink.events]
        percents = [e.percent for e in sink.events]
        assert percents == sorted(percents)

    @pytest.mark.asyncio
    async def test_retries_stop_after_max_attempts(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        chunker = FlakyChunker(sample_transcript, TranscriptionError("rate limited"), failures=10)
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=chunker, llm=FakeLLM([]), max_attempts=3,
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.FAILED
        assert result.error == "rate limited"
        assert chunker.calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_failure_runs_once(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        chunker = FlakyChunker(sample_transcript, IngestError("unsupported container"), failures=1)
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=chunker, llm=FakeLLM([]),
        )

        result = await orchestrator.run(job)

        assert result.status == JobStatus.FAILED
        assert result.error == "unsupported container"
        assert chunker.calls == 1

    @pytest.mark.asyncio
    async def test_cleanup_error_keeps_original_failure(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript, error=TranscriptionError("chunk 2 failed")),
            llm=FakeLLM([]),
            max_attempts=1,
        )

        with patch(
            "reelforge.core.workflow.processor.shutil.rmtree",
            side_effect=OSError("device busy"),
        ) as rmtree:
            result = await orchestrator.run(job)

        rmtree.assert_called_once_with(work_dir / "job1")
        assert result.status == JobStatus.FAILED
        assert result.error == "chunk 2 failed"

    @pytest.mark.asyncio
    async def test_logs_ranking_path_and_reasoning(
        self, job, job_repo, clip_repo, storage, cache, work_dir, downloader, sample_transcript
    ):
        llm = FakeLLM([_ranking_response(3), _texts_response("First"), _texts_response("Second")])
        orchestrator = _orchestrator(
            job_repo, clip_repo, storage, cache, work_dir, downloader,
            chunker=FakeChunker(sample_transcript), llm=llm,
        )

        with patch("reelforge.core.workflow.processor.logger") as mock_logger:
            await orchestrator.run(job)

        messages = [c.args[0] for c in mock_logger.info.call_args_list]
        assert any("full-transcript fallback ranking" in m and "Reasoning: test" in m for m in messages)
