"""
Domain models shared by the pipeline stages.

Transcript and highlight types are pydantic models because they cross the
cache and the HTTP surface; boundaries, scenes and rendered clips live only
inside one job and are plain dataclasses.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

BoundaryType = Literal["silence", "punctuation", "semantic", "topic_change", "end"]
AspectRatio = Literal["9:16", "1:1", "16:9"]


class TranscriptSegment(BaseModel):
    """One time-aligned span of speech, in seconds."""

    start: float = Field(..., ge=0)
    end: float = Field(..., ge=0)
    text: str = ""
    confidence: Optional[float] = Field(None, ge=0, le=1)

    @property
    def duration(self) -> float:
        return self.end - self.start


class Transcript(BaseModel):
    """Merged transcript covering a whole source file."""

    segments: List[TranscriptSegment] = Field(default_factory=list)
    language: str = "en"
    duration: float = Field(0.0, ge=0)

    @property
    def text(self) -> str:
        return " ".join(seg.text.strip() for seg in self.segments if seg.text.strip())

    def segments_between(self, start: float, end: float) -> List[TranscriptSegment]:
        """Return segments overlapping the half-open window [start, end)."""
        return [seg for seg in self.segments if seg.start < end and seg.end > start]


class HighlightSegment(BaseModel):
    """A scored time window selected for extraction as a clip."""

    start: float
    end: float
    score: float = Field(0.5, ge=0, le=1)
    title: str = ""
    reason: str = ""
    keywords: List[str] = Field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.end - self.start


class SubtitlePreferences(BaseModel):
    """Caption styling applied when burning subtitles into a clip."""

    position: Literal["top", "center", "bottom"] = "bottom"
    format: Literal["single-line", "multi-line", "karaoke", "progressive"] = "multi-line"
    font: str = Field("Inter", min_length=1, max_length=100)
    font_size: int = Field(32, ge=16, le=48)
    font_color: str = "#FFFFFF"
    background_color: str = "#000000"
    background_opacity: float = Field(0.85, ge=0, le=1)
    bold: bool = True
    italic: bool = False
    outline: bool = True
    outline_color: str = "#000000"
    outline_width: int = Field(3, ge=1, le=5)
    shadow: bool = True
    shadow_color: str = "#000000"
    max_chars_per_line: int = Field(28, ge=20, le=60)
    margin_vertical: int = Field(80, ge=0, le=600)

    @field_validator("font_color", "background_color", "outline_color", "shadow_color")
    @classmethod
    def validate_hex_color(cls, v: str) -> str:
        """Validate #RRGGBB colors."""
        value = v.strip()
        if not value.startswith("#"):
            value = f"#{value}"
        if len(value) != 7:
            raise ValueError(f"Invalid color: {v}. Expected #RRGGBB")
        try:
            int(value[1:], 16)
        except ValueError:
            raise ValueError(f"Invalid color: {v}. Expected #RRGGBB") from None
        return value.upper()


class AnalysisOptions(BaseModel):
    """Clip selection bounds requested for a job."""

    clip_count: int = Field(5, ge=1, le=10)
    min_duration: float = Field(30.0, gt=0)
    max_duration: float = Field(120.0, gt=0, le=600.0)
    target_duration: float = Field(60.0, ge=15, le=90)

    @model_validator(mode="after")
    def check_bounds(self) -> "AnalysisOptions":
        if self.min_duration > self.max_duration:
            raise ValueError("min_duration must not exceed max_duration")
        return self


@dataclass
class SceneBoundary:
    """A hypothesised cut point in the transcript timeline."""

    timestamp: float
    type: BoundaryType
    confidence: float


@dataclass
class DetectedScene:
    """A candidate highlight window bounded by detected boundaries."""

    start: float
    end: float
    confidence: float
    boundary_types: List[str]
    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class RenderedClip:
    """A finished clip on local disk, waiting for export."""

    id: str
    index: int
    video_path: Path
    thumbnail_path: Path
    duration: float
    segment: HighlightSegment
    title: str = ""
    description: str = ""
    hashtags: List[str] = field(default_factory=list)
