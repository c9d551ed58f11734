"""
Prompt builders for highlight ranking.
"""

import textwrap
from typing import Sequence

from reelforge.core.models import AnalysisOptions, DetectedScene, Transcript

SYSTEM_INSTRUCTION = (
    "You are an expert short-form video editor for TikTok, Instagram Reels and "
    "YouTube Shorts. Respond with a single valid JSON object and nothing else: "
    "no markdown, no commentary."
)

RANKING_CRITERIA = textwrap.dedent(
    """
    1. Strong opening hook: the first seconds must grab attention.
    2. Information density: valuable, practical or surprising content.
    3. Self-contained narrative arc: makes sense without the full video.
    4. Emotional peak: revelation, humour, tension or inspiration.
    5. Topical diversity: the picks should cover different subjects.
    6. Clause-level clarity: no cuts in the middle of a sentence or idea.
    7. Attention triggers: numbers, questions, lists.
    """
).strip()


def format_timestamp(seconds: float) -> str:
    """Format seconds as MM:SS."""
    total = int(max(0.0, seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def format_transcript(transcript: Transcript) -> str:
    return "\n".join(
        f"[{format_timestamp(seg.start)} - {format_timestamp(seg.end)}] {seg.text.strip()}"
        for seg in transcript.segments
    )


def format_scenes(scenes: Sequence[DetectedScene]) -> str:
    blocks = []
    for index, scene in enumerate(scenes):
        blocks.append(
            f"SCENE {index}\n"
            f"Time: {format_timestamp(scene.start)} - {format_timestamp(scene.end)} "
            f"({scene.duration:.0f}s)\n"
            f"Boundaries: {', '.join(scene.boundary_types)}\n"
            f"Text: {scene.text}"
        )
    return "\n\n".join(blocks)


def build_ranking_prompt(
    scenes: Sequence[DetectedScene],
    clip_count: int,
    language: str,
) -> str:
    """Prompt asking the model to pick clip_count of the given scenes."""
    return textwrap.dedent(
        """
        Below are {scene_count} candidate scenes detected in a long video.
        Select EXACTLY {clip_count} scenes with the highest viral potential.

        CRITERIA (in priority order):
        {criteria}

        SCENES:
        {scenes}

        Titles, reasons and keywords must be written in the video's language ({language}).

        Respond ONLY with JSON in this format:
        {{
          "rankings": [
            {{
              "scene_index": 0,
              "score": 0.95,
              "title": "Catchy clip title",
              "reason": "Why this moment works as a short clip",
              "keywords": ["keyword1", "keyword2", "keyword3"]
            }}
          ],
          "reasoning": "Overall explanation of the selection"
        }}
        """
    ).strip().format(
        scene_count=len(scenes),
        clip_count=clip_count,
        criteria=RANKING_CRITERIA,
        scenes=format_scenes(scenes),
        language=language,
    )


def build_analysis_prompt(transcript: Transcript, options: AnalysisOptions) -> str:
    """Prompt asking the model to find clip time ranges in a raw transcript."""
    total = int(transcript.duration)
    return textwrap.dedent(
        """
        Analyze this video transcript and identify the {clip_count} BEST moments
        to turn into viral short clips.

        TRANSCRIPT:
        {transcript}

        REQUIREMENTS:
        - Each clip must last between {min_duration:.0f} and {max_duration:.0f} seconds
          (ideally about {target_duration:.0f}s).
        - Use timestamps in seconds from the start of the video.
        - Clips must make sense on their own, without the rest of the video.

        CRITERIA (in priority order):
        {criteria}

        Return EXACTLY {clip_count} clips. Titles, reasons and keywords must be
        written in the video's language ({language}).

        Respond ONLY with JSON in this format:
        {{
          "segments": [
            {{
              "start": 0,
              "end": 60,
              "score": 0.95,
              "title": "Catchy clip title",
              "reason": "Why this moment works as a short clip",
              "keywords": ["keyword1", "keyword2", "keyword3"]
            }}
          ],
          "reasoning": "Overall explanation of the analysis"
        }}

        Total video duration: {minutes}min {seconds}s
        """
    ).strip().format(
        clip_count=options.clip_count,
        transcript=format_transcript(transcript),
        min_duration=options.min_duration,
        max_duration=options.max_duration,
        target_duration=options.target_duration,
        criteria=RANKING_CRITERIA,
        language=transcript.language,
        minutes=total // 60,
        seconds=total % 60,
    )
