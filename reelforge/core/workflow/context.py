"""
Data structures for the processing workflow.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from reelforge.core.models import DetectedScene, HighlightSegment, RenderedClip, Transcript
from reelforge.core.repositories.models import ClipRecord, JobRecord


@dataclass
class ProcessingContext:
    """Per-job state carried from one stage to the next."""

    job: JobRecord
    workdir: Path
    video_file: Optional[Path] = None
    video_duration: float = 0.0
    transcript: Optional[Transcript] = None
    scenes: List[DetectedScene] = field(default_factory=list)
    segments: List[HighlightSegment] = field(default_factory=list)
    reasoning: str = ""
    used_fallback: bool = False
    clips: List[RenderedClip] = field(default_factory=list)
    clip_records: List[ClipRecord] = field(default_factory=list)
    source_key: Optional[str] = None

    @property
    def clips_dir(self) -> Path:
        return self.workdir / "clips"
