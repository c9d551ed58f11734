"""
Validation of ranked highlight segments.

Non-finite, out-of-bounds and too-short segments are dropped (logged, never raised);
overlong segments are truncated from the tail so the opening hook is kept.
"""

import logging
import math
from typing import List, Sequence

from reelforge.core.models import HighlightSegment

logger = logging.getLogger(__name__)


def validate_segments(
    segments: Sequence[HighlightSegment],
    video_duration: float,
    min_duration: float,
    max_duration: float,
) -> List[HighlightSegment]:
    """
    Clean a list of highlight segments.

    Args:
        segments: Raw segments from the ranker.
        video_duration: Duration of the source video in seconds.
        min_duration: Shortest acceptable clip.
        max_duration: Longest acceptable clip.

    Returns:
        Valid segments sorted by descending score. Running the function
        again on its own output returns the same list.
    """
    valid: List[HighlightSegment] = []

    for seg in segments:
        if not (math.isfinite(seg.start) and math.isfinite(seg.end)):
            logger.info(f"Dropping segment with non-finite times {seg.start}-{seg.end}: {seg.title}")
            continue

        if seg.start < 0 or seg.end > video_duration or seg.start >= seg.end:
            logger.info(
                f"Dropping out-of-bounds segment {seg.start:.2f}-{seg.end:.2f} "
                f"(video {video_duration:.2f}s): {seg.title}"
            )
            continue

        duration = seg.end - seg.start
        if duration < min_duration:
            logger.info(
                f"Dropping short segment {seg.start:.2f}-{seg.end:.2f} "
                f"({duration:.1f}s < {min_duration:.1f}s): {seg.title}"
            )
            continue

        if duration > max_duration:
            new_end = min(seg.start + max_duration, video_duration)
            logger.info(
                f"Truncating segment {seg.start:.2f}-{seg.end:.2f} to end at {new_end:.2f}"
            )
            seg = seg.model_copy(update={"end": new_end})

        valid.append(seg)

    valid.sort(key=lambda s: s.score, reverse=True)
    logger.info(f"Validated {len(valid)} of {len(segments)} segments")
    return valid
