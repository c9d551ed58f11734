"""
Pydantic models for persisted jobs and clips.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from reelforge.config import (
    DEFAULT_CLIP_COUNT,
    DEFAULT_LANGUAGE,
    DEFAULT_MAX_DURATION,
    DEFAULT_MIN_DURATION,
    DEFAULT_TARGET_DURATION,
    MAX_CLIP_COUNT,
    MAX_CLIP_DURATION,
)
from reelforge.core.models import AnalysisOptions, AspectRatio


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStage(str, Enum):
    QUEUED = "queued"
    INGEST = "ingest"
    TRANSCRIBE = "transcribe"
    SCENES = "scenes"
    RENDER = "render"
    FINALIZE = "finalize"
    EXPORT = "export"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}


class JobRecord(BaseModel):
    """A request to turn one source video into highlight clips."""

    id: str = Field(..., min_length=1, max_length=100)

    # Source: exactly one of url / upload_key
    source_url: Optional[str] = Field(None, max_length=2000)
    upload_key: Optional[str] = Field(None, max_length=500)

    # Selection bounds
    clip_count: int = Field(DEFAULT_CLIP_COUNT, ge=1, le=MAX_CLIP_COUNT)
    min_duration: float = Field(DEFAULT_MIN_DURATION, gt=0)
    max_duration: float = Field(DEFAULT_MAX_DURATION, gt=0, le=MAX_CLIP_DURATION)
    target_duration: float = Field(DEFAULT_TARGET_DURATION, ge=15, le=90)

    # Rendering
    aspect_ratio: AspectRatio = "9:16"
    language: str = Field(DEFAULT_LANGUAGE, min_length=2, max_length=10)
    subtitles: bool = True
    subtitle_preferences: Optional[Dict[str, Any]] = None

    # State
    stage: JobStage = JobStage.QUEUED
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(0, ge=0, le=100)
    message: str = ""
    error: Optional[str] = Field(None, max_length=1000)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_source_and_bounds(self) -> "JobRecord":
        if bool(self.source_url) == bool(self.upload_key):
            raise ValueError("Exactly one of source_url or upload_key is required")
        if self.min_duration > self.max_duration:
            raise ValueError("min_duration must not exceed max_duration")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def analysis_options(self) -> AnalysisOptions:
        return AnalysisOptions(
            clip_count=self.clip_count,
            min_duration=self.min_duration,
            max_duration=self.max_duration,
            target_duration=self.target_duration,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        """Create from Firestore document dictionary."""
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Firestore-compatible dictionary."""
        return self.model_dump(mode="python", exclude_none=False) | {
            "stage": self.stage.value,
            "status": self.status.value,
        }


class ClipRecord(BaseModel):
    """A finished clip belonging to a job."""

    id: str = Field(..., min_length=1, max_length=100)
    job_id: str = Field(..., min_length=1, max_length=100)
    index: int = Field(..., ge=0)

    start: float = Field(..., ge=0)
    end: float = Field(..., gt=0)
    duration: float = Field(..., gt=0, le=3600)
    score: float = Field(0.5, ge=0, le=1)

    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field("", max_length=5000)
    hashtags: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)

    video_key: str = Field(..., min_length=1, max_length=500)
    thumbnail_key: Optional[str] = Field(None, max_length=500)
    video_url: str = ""
    thumbnail_url: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("end")
    @classmethod
    def validate_end(cls, v: float, info) -> float:
        start = info.data.get("start")
        if start is not None and v <= start:
            raise ValueError("end must be greater than start")
        return v

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClipRecord":
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="python", exclude_none=False)
