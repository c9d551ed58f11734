"""
Transcript-based scene boundary detection.

Cut points are proposed from three independent signals:

- silence: gaps between consecutive segments
- punctuation: sentence-final marks at or inside a segment
- semantic / topic_change: discourse-transition openers and low lexical
  overlap with the preceding segments

Boundaries closer than MERGE_THRESHOLD seconds are collapsed (the more
confident one wins) and consecutive boundaries are turned into candidate
scenes bounded by min/max duration.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from reelforge.core.models import DetectedScene, SceneBoundary, Transcript, TranscriptSegment

logger = logging.getLogger(__name__)

MERGE_THRESHOLD = 5.0

SILENCE_CONFIDENCE_SCALE = 3.0
PUNCTUATION_END_CONFIDENCE = 0.7
PUNCTUATION_INNER_CONFIDENCE = 0.6
TRANSITION_CONFIDENCE = 0.75
TOPIC_CHANGE_CONFIDENCE = 0.65
TRAILING_SCENE_CONFIDENCE = 0.5

TOPIC_WINDOW = 3
TOPIC_MIN_WORD_LENGTH = 5  # words longer than 4 characters
TOPIC_MIN_WORDS = 5
TOPIC_OVERLAP_THRESHOLD = 0.3

_TRAILING_PUNCT_RE = re.compile(r"[.!?…]$")
_INNER_PUNCT_RE = re.compile(r"[.!?]\s+")

TRANSITION_PHRASES: Dict[str, Tuple[str, ...]] = {
    "en": (
        "now",
        "but",
        "however",
        "so",
        "anyway",
        "next",
        "another point",
        "another thing",
        "on the other hand",
        "moving on",
        "speaking of",
        "also",
        "besides",
        "back to",
    ),
    "pt": (
        "agora",
        "então",
        "mas",
        "porém",
        "entretanto",
        "voltando",
        "mudando de assunto",
        "falando sobre",
        "próximo",
        "próxima",
        "outro ponto",
        "outra coisa",
        "além disso",
        "por outro lado",
    ),
}


@dataclass
class SceneDetectionOptions:
    """Tuning knobs for scene detection."""

    min_silence_duration: float = 1.0
    min_scene_duration: float = 30.0
    max_scene_duration: float = 90.0
    padding: float = 0.4
    target_scene_count: int = 10


def detect_silence_boundaries(
    segments: Sequence[TranscriptSegment],
    min_silence_duration: float,
) -> List[SceneBoundary]:
    """Place a boundary at the midpoint of every long enough gap."""
    boundaries: List[SceneBoundary] = []
    for current, nxt in zip(segments, segments[1:]):
        gap = nxt.start - current.end
        if gap >= min_silence_duration:
            boundaries.append(
                SceneBoundary(
                    timestamp=current.end + gap / 2,
                    type="silence",
                    confidence=min(1.0, gap / SILENCE_CONFIDENCE_SCALE),
                )
            )
    return boundaries


def detect_punctuation_boundaries(segments: Sequence[TranscriptSegment]) -> List[SceneBoundary]:
    """
    Boundaries from sentence-final punctuation.

    A segment ending a sentence yields a boundary at its end. A sentence
    break inside a segment yields a weaker boundary, interpolated by the
    share of words before the first break.
    """
    boundaries: List[SceneBoundary] = []
    for segment in segments:
        text = segment.text.strip()
        if not text:
            continue

        if _TRAILING_PUNCT_RE.search(text):
            boundaries.append(
                SceneBoundary(
                    timestamp=segment.end,
                    type="punctuation",
                    confidence=PUNCTUATION_END_CONFIDENCE,
                )
            )

        if _INNER_PUNCT_RE.search(text):
            words = text.split()
            first_sentence = _INNER_PUNCT_RE.split(text, maxsplit=1)[0]
            words_before = max(1, len(first_sentence.split()))
            ratio = words_before / len(words)
            boundaries.append(
                SceneBoundary(
                    timestamp=segment.start + (segment.end - segment.start) * ratio,
                    type="punctuation",
                    confidence=PUNCTUATION_INNER_CONFIDENCE,
                )
            )
    return boundaries


def _content_words(text: str) -> List[str]:
    return [w for w in text.lower().split() if len(w) >= TOPIC_MIN_WORD_LENGTH]


def _transition_pattern(language: str) -> re.Pattern:
    phrases = TRANSITION_PHRASES.get(language.split("-")[0].lower(), TRANSITION_PHRASES["en"])
    alternatives = "|".join(re.escape(p) for p in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"^(?:{alternatives})\b")


def detect_semantic_boundaries(
    segments: Sequence[TranscriptSegment],
    language: str = "en",
) -> List[SceneBoundary]:
    """Boundaries from discourse-transition openers and topical drift."""
    boundaries: List[SceneBoundary] = []
    transition_re = _transition_pattern(language)

    for i in range(1, len(segments)):
        current = segments[i]
        text = current.text.lower().strip()

        if transition_re.match(text):
            boundaries.append(
                SceneBoundary(
                    timestamp=current.start,
                    type="semantic",
                    confidence=TRANSITION_CONFIDENCE,
                )
            )

        if i >= TOPIC_WINDOW:
            previous_words = {
                word
                for seg in segments[i - TOPIC_WINDOW:i]
                for word in _content_words(seg.text)
            }
            current_words = _content_words(current.text)
            if len(current_words) >= TOPIC_MIN_WORDS:
                overlap = sum(1 for w in current_words if w in previous_words)
                if overlap / len(current_words) < TOPIC_OVERLAP_THRESHOLD:
                    boundaries.append(
                        SceneBoundary(
                            timestamp=current.start,
                            type="topic_change",
                            confidence=TOPIC_CHANGE_CONFIDENCE,
                        )
                    )
    return boundaries


def merge_boundaries(
    boundaries: Sequence[SceneBoundary],
    threshold: float = MERGE_THRESHOLD,
) -> List[SceneBoundary]:
    """
    Collapse boundaries closer than threshold seconds.

    Input is sorted by timestamp first. Within a cluster the boundary with
    the higher confidence is kept; on ties the earlier one stays.
    """
    ordered = sorted(boundaries, key=lambda b: b.timestamp)
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.timestamp - last.timestamp < threshold:
            if current.confidence > last.confidence:
                merged[-1] = current
        else:
            merged.append(current)
    return merged


class SceneDetector:
    """Buckets a transcript into candidate highlight scenes."""

    def __init__(self, options: SceneDetectionOptions | None = None):
        self.options = options or SceneDetectionOptions()

    def detect_boundaries(self, transcript: Transcript) -> List[SceneBoundary]:
        segments = transcript.segments
        boundaries = (
            detect_silence_boundaries(segments, self.options.min_silence_duration)
            + detect_punctuation_boundaries(segments)
            + detect_semantic_boundaries(segments, transcript.language)
        )
        logger.debug(
            f"Boundaries detected: "
            f"silence={sum(b.type == 'silence' for b in boundaries)} "
            f"punctuation={sum(b.type == 'punctuation' for b in boundaries)} "
            f"semantic={sum(b.type == 'semantic' for b in boundaries)} "
            f"topic_change={sum(b.type == 'topic_change' for b in boundaries)}"
        )
        return boundaries

    def detect(self, transcript: Transcript) -> List[DetectedScene]:
        """
        Detect candidate scenes in a transcript.

        Returns:
            Up to target_scene_count scenes, the most confident ones,
            in chronological order.
        """
        opts = self.options
        logger.info(
            f"Starting scene detection: {len(transcript.segments)} segments, "
            f"{transcript.duration:.1f}s, target {opts.target_scene_count} scenes"
        )

        merged = merge_boundaries(self.detect_boundaries(transcript))
        scenes = self._build_scenes(transcript, merged)

        ranked = sorted(scenes, key=lambda s: s.confidence, reverse=True)
        selected = ranked[:opts.target_scene_count]
        selected.sort(key=lambda s: s.start)

        logger.info(
            f"Scene detection completed: {len(scenes)} candidates, {len(selected)} selected"
        )
        return selected

    def _build_scenes(
        self,
        transcript: Transcript,
        boundaries: Sequence[SceneBoundary],
    ) -> List[DetectedScene]:
        opts = self.options
        min_duration = opts.min_scene_duration
        max_duration = opts.max_scene_duration
        scenes: List[DetectedScene] = []
        scene_start = 0.0

        for boundary in boundaries:
            scene_end = boundary.timestamp
            raw_duration = scene_end - scene_start

            if min_duration <= raw_duration <= max_duration * 1.5:
                padded_start = max(0.0, scene_start - opts.padding)
                padded_end = min(transcript.duration, scene_end + opts.padding)
                inside = [
                    seg for seg in transcript.segments
                    if seg.start >= padded_start and seg.end <= padded_end
                ]
                if inside:
                    scenes.append(
                        DetectedScene(
                            start=padded_start,
                            end=padded_end,
                            confidence=boundary.confidence,
                            boundary_types=[boundary.type],
                            text=" ".join(seg.text.strip() for seg in inside),
                            segments=inside,
                        )
                    )

            scene_start = boundary.timestamp

        remaining = transcript.duration - scene_start
        if remaining > 0 and remaining >= min_duration:
            padded_start = max(0.0, scene_start - opts.padding)
            inside = [
                seg for seg in transcript.segments
                if seg.start >= padded_start and seg.end <= transcript.duration
            ]
            if inside:
                scenes.append(
                    DetectedScene(
                        start=padded_start,
                        end=transcript.duration,
                        confidence=TRAILING_SCENE_CONFIDENCE,
                        boundary_types=["end"],
                        text=" ".join(seg.text.strip() for seg in inside),
                        segments=inside,
                    )
                )

        return [scene for scene in scenes if scene.duration <= max_duration]
