"""
Pipeline exceptions.

Every stage raises a subclass of PipelineError; the orchestrator is the
single place that turns them into a failed job. A stage that fails with a
retryable error is run again, up to STAGE_MAX_ATTEMPTS times.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for all pipeline stage errors."""

    stage: str = "pipeline"
    retryable: bool = False

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class IngestError(PipelineError):
    """Source video could not be fetched or is unsupported."""

    stage = "ingest"


class TranscriptionError(PipelineError):
    """A chunk transcription failed or returned a malformed response."""

    stage = "transcribe"
    retryable = True


class RankingError(PipelineError):
    """The ranking service returned an unusable response."""

    stage = "rank"


class RenderError(PipelineError):
    """Transcoding failed for a clip."""

    stage = "render"


class SourceVideoNotFoundError(RenderError):
    """The original source video is no longer retrievable."""
