"""
Pydantic models for request/response validation.
"""

from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from reelforge.config import (
    DEFAULT_CLIP_COUNT,
    DEFAULT_LANGUAGE,
    DEFAULT_MAX_DURATION,
    DEFAULT_MIN_DURATION,
    DEFAULT_TARGET_DURATION,
    MAX_CLIP_COUNT,
    MAX_CLIP_DURATION,
)
from reelforge.core.models import AspectRatio, SubtitlePreferences
from reelforge.core.repositories.models import ClipRecord, JobRecord


# -----------------------------------------------------------------------------
# Base Models
# -----------------------------------------------------------------------------

class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        str_min_length=0,
    )


# -----------------------------------------------------------------------------
# Jobs
# -----------------------------------------------------------------------------

class CreateJobRequest(BaseSchema):
    """Request to generate clips from one source video."""
    source_url: Optional[str] = Field(default=None, max_length=2000, description="Video URL (yt-dlp compatible)")
    upload_key: Optional[str] = Field(default=None, max_length=500, description="Storage key of an uploaded video")
    clip_count: int = Field(default=DEFAULT_CLIP_COUNT, ge=1, le=MAX_CLIP_COUNT)
    min_duration: float = Field(default=DEFAULT_MIN_DURATION, gt=0)
    max_duration: float = Field(default=DEFAULT_MAX_DURATION, gt=0, le=MAX_CLIP_DURATION)
    target_duration: float = Field(default=DEFAULT_TARGET_DURATION, ge=15, le=90)
    aspect_ratio: AspectRatio = "9:16"
    language: str = Field(default=DEFAULT_LANGUAGE, min_length=2, max_length=10)
    subtitles: bool = True
    subtitle_preferences: Optional[SubtitlePreferences] = None

    @field_validator("source_url")
    @classmethod
    def validate_source_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("source_url must be an http(s) URL")
        return v

    @field_validator("upload_key")
    @classmethod
    def validate_upload_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (".." in v or v.startswith("/")):
            raise ValueError("Invalid upload key")
        return v

    @model_validator(mode="after")
    def check_source(self) -> "CreateJobRequest":
        if bool(self.source_url) == bool(self.upload_key):
            raise ValueError("Provide exactly one of source_url or upload_key")
        if self.min_duration > self.max_duration:
            raise ValueError("min_duration must not exceed max_duration")
        return self

    def to_job(self, job_id: str) -> JobRecord:
        return JobRecord(
            id=job_id,
            source_url=self.source_url,
            upload_key=self.upload_key,
            clip_count=self.clip_count,
            min_duration=self.min_duration,
            max_duration=self.max_duration,
            target_duration=self.target_duration,
            aspect_ratio=self.aspect_ratio,
            language=self.language,
            subtitles=self.subtitles,
            subtitle_preferences=(
                self.subtitle_preferences.model_dump() if self.subtitle_preferences else None
            ),
        )


class ClipResponse(BaseSchema):
    """A finished clip."""
    id: str
    index: int
    start: float
    end: float
    duration: float
    score: float
    title: str
    description: str = ""
    hashtags: List[str] = Field(default_factory=list)
    video_url: str
    thumbnail_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: ClipRecord) -> "ClipResponse":
        return cls(
            id=record.id,
            index=record.index,
            start=record.start,
            end=record.end,
            duration=record.duration,
            score=record.score,
            title=record.title,
            description=record.description,
            hashtags=record.hashtags,
            video_url=record.video_url,
            thumbnail_url=record.thumbnail_url,
        )


class JobResponse(BaseSchema):
    """Job state, with clips once the job has completed."""
    id: str
    status: str
    stage: str
    progress: int
    message: str = ""
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    clips: List[ClipResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, job: JobRecord, clips: Optional[List[ClipRecord]] = None) -> "JobResponse":
        return cls(
            id=job.id,
            status=job.status.value,
            stage=job.stage.value,
            progress=job.progress,
            message=job.message,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
            clips=[ClipResponse.from_record(c) for c in clips or []],
        )


# -----------------------------------------------------------------------------
# Re-rendering and subtitle overrides
# -----------------------------------------------------------------------------

class RerenderRequest(BaseSchema):
    """Re-render one clip, optionally with caption overrides."""
    subtitle_preferences: Optional[SubtitlePreferences] = None


class SubtitleOverrideRequest(BaseSchema):
    """Caption preferences stored for later renders."""
    preferences: SubtitlePreferences


class SubtitleOverrideResponse(BaseSchema):
    job_id: str
    clip_id: Optional[str] = None
    preferences: SubtitlePreferences
    expires_in: int


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------

class HealthResponse(BaseSchema):
    """Health check response."""
    status: str = "healthy"
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
